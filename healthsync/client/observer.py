"""
Lifecycle observer for the upload pipeline.

Components never log directly; they report to an ``UploadObserver`` at fixed
points (chunk sent, retry scheduled, checksum mismatch, job state change).
``LoggingObserver`` is the default and writes structured records through the
standard logging module.
"""
import logging
from typing import Optional, Protocol

from healthsync.client.models import ChunkDescriptor, JobState, UploadProgress

logger = logging.getLogger("healthsync.client")


class UploadObserver(Protocol):
	def chunk_sending(self, descriptor: ChunkDescriptor, attempt: int) -> None: ...

	def chunk_sent(self, descriptor: ChunkDescriptor, attempts: int, progress: UploadProgress) -> None: ...

	def chunk_retry(
		self, descriptor: ChunkDescriptor, attempt: int, delay: float, reason: str, status_code: Optional[int]
	) -> None: ...

	def chunk_failed(self, descriptor: ChunkDescriptor, attempts: int, reason: str) -> None: ...

	def checksum_unavailable(self, descriptor: ChunkDescriptor) -> None: ...

	def checksum_mismatch(self, descriptor: ChunkDescriptor, local: str, remote: str) -> None: ...

	def upload_cancelled(self, file_name: str, reason: str) -> None: ...

	def job_state_changed(self, processing_id: str, state: JobState, message: str) -> None: ...

	def job_status_unavailable(self, processing_id: str, attempt: int, reason: str) -> None: ...


class LoggingObserver:
	def __init__(self, log: Optional[logging.Logger] = None) -> None:
		self.log = log or logger

	def chunk_sending(self, descriptor: ChunkDescriptor, attempt: int) -> None:
		self.log.debug(
			"sending chunk",
			extra={"chunk_number": descriptor.chunk_number, "total_chunks": descriptor.total_chunks, "attempt": attempt, "size": descriptor.size},
		)

	def chunk_sent(self, descriptor: ChunkDescriptor, attempts: int, progress: UploadProgress) -> None:
		self.log.info(
			"chunk sent",
			extra={"chunk_number": descriptor.chunk_number, "attempts": attempts, "loaded": progress.loaded, "percentage": progress.percentage},
		)

	def chunk_retry(
		self, descriptor: ChunkDescriptor, attempt: int, delay: float, reason: str, status_code: Optional[int]
	) -> None:
		self.log.warning(
			f"Retry {attempt + 1} for chunk {descriptor.chunk_number} in {delay:.1f}s: {reason}",
			extra={"chunk_number": descriptor.chunk_number, "attempt": attempt, "delay": delay, "status": status_code},
		)

	def chunk_failed(self, descriptor: ChunkDescriptor, attempts: int, reason: str) -> None:
		self.log.error(
			"chunk failed",
			extra={"chunk_number": descriptor.chunk_number, "attempts": attempts, "error": reason},
		)

	def checksum_unavailable(self, descriptor: ChunkDescriptor) -> None:
		self.log.warning("checksum unavailable, sending without one", extra={"chunk_number": descriptor.chunk_number})

	def checksum_mismatch(self, descriptor: ChunkDescriptor, local: str, remote: str) -> None:
		self.log.warning(
			"checksum mismatch",
			extra={"chunk_number": descriptor.chunk_number, "local_checksum": local, "remote_checksum": remote},
		)

	def upload_cancelled(self, file_name: str, reason: str) -> None:
		self.log.info("upload cancelled", extra={"file_name": file_name, "reason": reason})

	def job_state_changed(self, processing_id: str, state: JobState, message: str) -> None:
		self.log.info(
			f"Processing job {processing_id} -> {state.value}",
			extra={"processing_id": processing_id, "state": state.value, "job_message": message},
		)

	def job_status_unavailable(self, processing_id: str, attempt: int, reason: str) -> None:
		self.log.warning(
			"error checking processing status",
			extra={"processing_id": processing_id, "attempt": attempt, "error": reason},
		)
