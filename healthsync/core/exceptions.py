"""
Error taxonomy for the upload-and-process pipeline.

Every error carries a machine-readable ``code``, a human ``message`` and a
``details`` mapping with structured context (chunk number, attempt, HTTP
status, processing id). Cancellation is modelled as its own subclass so that
callers can skip error reporting for user-initiated aborts.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
	VALIDATION_FAILED = "VALIDATION_FAILED"
	FILE_TOO_LARGE = "FILE_TOO_LARGE"
	UNAUTHORIZED = "UNAUTHORIZED"
	FORBIDDEN = "FORBIDDEN"
	UPLOAD_FAILED = "UPLOAD_FAILED"
	CANCELLED = "CANCELLED"
	PROCESSING_START_FAILED = "PROCESSING_START_FAILED"
	PROCESSING_FAILED = "PROCESSING_FAILED"


class UploadError(Exception):
	"""Base class for all pipeline errors."""

	default_code = ErrorCode.UPLOAD_FAILED

	def __init__(
		self,
		message: str,
		code: Optional[ErrorCode] = None,
		details: Optional[Dict[str, Any]] = None,
	) -> None:
		super().__init__(message)
		self.message = message
		self.code = code or self.default_code
		self.details: Dict[str, Any] = dict(details or {})

	def to_dict(self) -> Dict[str, Any]:
		return {"code": self.code.value, "message": self.message, "details": self.details}

	def __repr__(self) -> str:
		return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class FileValidationError(UploadError):
	default_code = ErrorCode.VALIDATION_FAILED


class TransmitError(UploadError):
	"""A chunk could not be delivered."""


class TransferCancelled(TransmitError):
	default_code = ErrorCode.CANCELLED

	def __init__(self, message: str = "Upload cancelled", details: Optional[Dict[str, Any]] = None) -> None:
		super().__init__(message, ErrorCode.CANCELLED, details)


class ProcessingStartError(UploadError):
	default_code = ErrorCode.PROCESSING_START_FAILED


class ProcessingFailedError(UploadError):
	default_code = ErrorCode.PROCESSING_FAILED


STATUS_ERROR_CODES = {
	413: ErrorCode.FILE_TOO_LARGE,
	401: ErrorCode.UNAUTHORIZED,
	403: ErrorCode.FORBIDDEN,
}
