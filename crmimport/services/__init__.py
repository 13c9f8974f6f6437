"""Services for the crmimport application."""

from crmimport.services.file_storage import ImportFileStorage
from crmimport.services.import_service.service import ImportService, UploadResult

__all__ = ["ImportFileStorage", "ImportService", "UploadResult"]
