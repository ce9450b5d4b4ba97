"""
Service layer - editing, lifecycle, uploads and user feedback.
"""
from .document_lifecycle import DocumentLifecycleController
from .document_list import DocumentListOrchestrator
from .error_handling_service import ErrorHandlingService, FailedOperation
from .metadata_engine import MetadataEditEngine
from .metadata_fields import MetadataFieldRegistry
from .notification_service import NotificationService, NoticeLevel
from .upload_service import FileUploadCoordinator, UploadItem, UploadStatus

__all__ = [
    "DocumentLifecycleController",
    "DocumentListOrchestrator",
    "ErrorHandlingService",
    "FailedOperation",
    "MetadataEditEngine",
    "MetadataFieldRegistry",
    "NotificationService",
    "NoticeLevel",
    "FileUploadCoordinator",
    "UploadItem",
    "UploadStatus"
]
