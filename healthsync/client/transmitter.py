import asyncio
from typing import Callable, Dict, Optional

import httpx

from healthsync.client.api import UploadApiClient, error_text, json_body
from healthsync.client.models import ChunkDescriptor, ChunkState, ProgressTracker, ServerAck, UploadProgress
from healthsync.client.observer import LoggingObserver, UploadObserver
from healthsync.client.retry import CancellationToken, RetryPolicy, Sleep
from healthsync.core.exceptions import STATUS_ERROR_CODES, ErrorCode, TransferCancelled, TransmitError

ProgressCallback = Callable[[UploadProgress], None]
ChunkCallback = Callable[[ChunkDescriptor, ServerAck], None]


class ChunkTransmitter:
	"""Sends single chunks, retrying transient failures with exponential backoff."""

	def __init__(
		self,
		api: UploadApiClient,
		policy: Optional[RetryPolicy] = None,
		observer: Optional[UploadObserver] = None,
		sleep: Sleep = asyncio.sleep,
		tracker: Optional[ProgressTracker] = None,
		on_progress: Optional[ProgressCallback] = None,
		on_chunk_complete: Optional[ChunkCallback] = None,
	) -> None:
		self.api = api
		self.policy = policy or RetryPolicy.for_chunks()
		self.observer = observer or LoggingObserver()
		self.sleep = sleep
		self.tracker = tracker
		self.on_progress = on_progress
		self.on_chunk_complete = on_chunk_complete
		self.states: Dict[int, ChunkState] = {}

	async def send(
		self,
		descriptor: ChunkDescriptor,
		checksum: Optional[str],
		file_name: str,
		cancel_token: Optional[CancellationToken] = None,
	) -> ServerAck:
		token = cancel_token or CancellationToken()
		number = descriptor.chunk_number
		self.states[number] = ChunkState.PENDING
		if checksum is None:
			self.observer.checksum_unavailable(descriptor)

		last_status: Optional[int] = None
		last_reason = "no attempt made"
		attempts = 0
		for attempt in range(self.policy.max_attempts):
			if token.cancelled:
				self._cancelled(descriptor, attempt)
			self.states[number] = ChunkState.SENDING
			self.observer.chunk_sending(descriptor, attempt)
			attempts = attempt + 1
			try:
				response = await token.run(self.api.upload_chunk(descriptor, file_name, checksum))
			except TransferCancelled:
				self._cancelled(descriptor, attempt)
			except httpx.TimeoutException as e:
				last_status, last_reason = None, f"Chunk {number} timed out: {e}"
			except httpx.HTTPError as e:
				last_status, last_reason = None, f"Network error uploading chunk {number}: {e}"
			else:
				if response.is_success:
					return self._acked(descriptor, checksum, response, attempts)
				last_status = response.status_code
				last_reason = error_text(
					response, f"Failed to upload chunk {number} (HTTP {response.status_code})"
				)
				if not self.policy.is_retryable(last_status):
					self.states[number] = ChunkState.FAILED
					self.observer.chunk_failed(descriptor, attempts, last_reason)
					raise TransmitError(
						last_reason,
						STATUS_ERROR_CODES.get(last_status, ErrorCode.UPLOAD_FAILED),
						details={"chunk_number": number, "attempt": attempt, "status": last_status},
					)

			if attempt < self.policy.max_attempts - 1:
				delay = self.policy.backoff(attempt)
				self.states[number] = ChunkState.RETRYING
				self.observer.chunk_retry(descriptor, attempt, delay, last_reason, last_status)
				try:
					await token.run(self.sleep(delay))
				except TransferCancelled:
					self._cancelled(descriptor, attempt)

		self.states[number] = ChunkState.FAILED
		self.observer.chunk_failed(descriptor, attempts, last_reason)
		raise TransmitError(
			f"Failed to upload chunk {number} after {attempts} attempts: {last_reason}",
			ErrorCode.UPLOAD_FAILED,
			details={"chunk_number": number, "attempt": attempts - 1, "attempts": attempts, "status": last_status},
		)

	def _acked(
		self,
		descriptor: ChunkDescriptor,
		checksum: Optional[str],
		response: httpx.Response,
		attempts: int,
	) -> ServerAck:
		ack = ServerAck(
			chunk_number=descriptor.chunk_number,
			status_code=response.status_code,
			body=json_body(response),
			attempts=attempts,
		)
		remote = ack.echoed_checksum
		if checksum and remote and remote.lower() != checksum.lower():
			# The server already accepted the chunk; report and move on.
			self.observer.checksum_mismatch(descriptor, checksum, remote)
		self.states[descriptor.chunk_number] = ChunkState.ACKED
		if self.tracker is not None:
			progress = self.tracker.advance(descriptor.size)
		else:
			progress = UploadProgress(loaded=descriptor.size, total=descriptor.size, percentage=100)
		self.observer.chunk_sent(descriptor, attempts, progress)
		if self.on_progress:
			self.on_progress(progress)
		if self.on_chunk_complete:
			self.on_chunk_complete(descriptor, ack)
		return ack

	def _cancelled(self, descriptor: ChunkDescriptor, attempt: int) -> None:
		self.states[descriptor.chunk_number] = ChunkState.CANCELLED
		raise TransferCancelled(details={"chunk_number": descriptor.chunk_number, "attempt": attempt})
