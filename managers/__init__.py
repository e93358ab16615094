"""Manager classes for the property media staging service"""

from managers.edit_session import EditSession
from managers.handle_registry import HandleRegistry
from managers.save_orchestrator import SaveOrchestrator
from managers.settings_manager import SettingsManager
from managers.staging_store import StagingStore
from managers.upload_reconciler import UploadReconciler

__all__ = [
    "EditSession",
    "HandleRegistry",
    "SaveOrchestrator",
    "SettingsManager",
    "StagingStore",
    "UploadReconciler",
]
