# Database models package
from preview_orchestrator.models.preview import Preview

__all__ = [
    "Preview",
]
