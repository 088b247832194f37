"""Preview Orchestrator: prompt-to-preview job lifecycle and queueing."""

__version__ = "0.3.0"
