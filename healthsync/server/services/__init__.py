"""
Services package for the healthsync reference server.
"""

from .processing import ProcessingManager, get_processing_manager
from .uploads import MissingChunksError, UploadManager, get_upload_manager

__all__ = [
	"ProcessingManager",
	"get_processing_manager",
	"MissingChunksError",
	"UploadManager",
	"get_upload_manager",
]
