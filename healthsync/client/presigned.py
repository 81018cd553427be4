"""Single-request upload through a presigned URL; no chunking, retries or checksums."""
from typing import Callable, Optional

import httpx

from healthsync.client.api import UploadApiClient, error_text
from healthsync.client.models import ProgressTracker, UploadProgress, UploadSource
from healthsync.client.validation import ensure_valid
from healthsync.core.exceptions import STATUS_ERROR_CODES, ErrorCode, TransmitError


class PresignedUploader:
	def __init__(self, api: UploadApiClient) -> None:
		self.api = api

	async def upload(
		self,
		source: Optional[UploadSource],
		on_progress: Optional[Callable[[UploadProgress], None]] = None,
		max_file_bytes: Optional[int] = None,
	) -> str:
		"""Upload the whole file and return the storage key it landed under."""
		source = ensure_valid(source, max_file_bytes)
		tracker = ProgressTracker(source.size)

		def _on_bytes(nbytes: int) -> None:
			progress = tracker.advance(nbytes)
			if on_progress:
				on_progress(progress)

		try:
			url, key = await self.api.request_upload_url(source.name, source.content_type)
			response = await self.api.put_file(url, source.read(0, source.size), source.content_type, on_bytes=_on_bytes)
		except httpx.HTTPStatusError as e:
			status = e.response.status_code
			raise TransmitError(
				str(e), STATUS_ERROR_CODES.get(status, ErrorCode.UPLOAD_FAILED), details={"status": status}
			) from e
		except httpx.HTTPError as e:
			raise TransmitError(f"Upload failed: {e}", ErrorCode.UPLOAD_FAILED) from e

		if response.is_error:
			raise TransmitError(
				error_text(response, f"Upload failed (HTTP {response.status_code})"),
				STATUS_ERROR_CODES.get(response.status_code, ErrorCode.UPLOAD_FAILED),
				details={"status": response.status_code, "key": key},
			)
		return key
