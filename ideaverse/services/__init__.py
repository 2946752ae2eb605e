# noqa
from ideaverse.services.reasoning_service import ReasoningService
from ideaverse.services.workflow_engine import WorkflowEngine
from ideaverse.services.export_service import ExportService

__all__ = ["ReasoningService", "WorkflowEngine", "ExportService"]
