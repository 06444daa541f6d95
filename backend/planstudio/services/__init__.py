"""Business logic services."""

from .version_graph import VersionGraph
from .session_service import SessionService
from .edit_orchestrator import EditOrchestrator, OrchestratorConfig

__all__ = ["VersionGraph", "SessionService", "EditOrchestrator", "OrchestratorConfig"]
