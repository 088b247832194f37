# Services package - business logic and external integrations
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.services.generator import CodeGenerator, TemplateCodeGenerator
from preview_orchestrator.services.netlify import DeploymentTarget, NetlifyDeploymentTarget
from preview_orchestrator.services.status import StatusProjector
from preview_orchestrator.services.previews import PreviewService

__all__ = [
    "PreviewStore",
    "CodeGenerator",
    "TemplateCodeGenerator",
    "DeploymentTarget",
    "NetlifyDeploymentTarget",
    "StatusProjector",
    "PreviewService",
]
