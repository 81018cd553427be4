from typing import Optional

from healthsync.client.models import UploadSource
from healthsync.core import constants
from healthsync.core.config import settings
from healthsync.core.exceptions import FileValidationError


def validate_file(source: Optional[UploadSource], max_bytes: Optional[int] = None) -> Optional[str]:
	"""Return the reason a file cannot be uploaded, or None if it is usable."""
	limit = settings.max_upload_bytes if max_bytes is None else max_bytes
	if source is None:
		return "No file selected"
	if source.size < constants.MIN_FILE_SIZE_BYTES:
		return "File is empty"
	if source.size > limit:
		return f"File size exceeds maximum allowed size of {round(limit / constants.MIB)}MB"
	return None


def ensure_valid(source: Optional[UploadSource], max_bytes: Optional[int] = None) -> UploadSource:
	reason = validate_file(source, max_bytes)
	if reason is not None:
		details = {"file_name": source.name, "size": source.size} if source is not None else {}
		raise FileValidationError(reason, details=details)
	return source
