import asyncio
from typing import Callable, Optional

from healthsync.client.api import UploadApiClient
from healthsync.client.coordinator import UploadCoordinator, UploadOptions
from healthsync.client.models import FinalAck, ProcessingResult, UploadProgress, UploadSource
from healthsync.client.observer import LoggingObserver, UploadObserver
from healthsync.client.poller import ProcessingJobPoller
from healthsync.client.presigned import PresignedUploader
from healthsync.client.retry import CancellationToken, RetryPolicy, Sleep


class HealthDataUploader:
	"""Upload a health export and drive its processing job to a terminal state."""

	def __init__(
		self,
		api: UploadApiClient,
		observer: Optional[UploadObserver] = None,
		sleep: Sleep = asyncio.sleep,
		poll_policy: Optional[RetryPolicy] = None,
	) -> None:
		self.api = api
		self.observer = observer or LoggingObserver()
		self.coordinator = UploadCoordinator(api, observer=self.observer, sleep=sleep)
		self.poller = ProcessingJobPoller(policy=poll_policy, observer=self.observer, sleep=sleep)

	async def upload(self, source: Optional[UploadSource], options: Optional[UploadOptions] = None) -> FinalAck:
		return await self.coordinator.upload(source, options)

	async def process(
		self,
		file_name: Optional[str] = None,
		on_status: Optional[Callable[[str], None]] = None,
		cancel_token: Optional[CancellationToken] = None,
	) -> ProcessingResult:
		return await self.poller.run(
			lambda: self.api.start_processing(file_name),
			self.api.fetch_status,
			on_status,
			cancel_token,
		)

	async def upload_and_process(
		self,
		source: Optional[UploadSource],
		options: Optional[UploadOptions] = None,
		on_status: Optional[Callable[[str], None]] = None,
	) -> ProcessingResult:
		opts = options or UploadOptions()
		final_ack = await self.coordinator.upload(source, opts)
		return await self.process(final_ack.file_name, on_status, opts.cancel_token)

	async def upload_presigned_and_process(
		self,
		source: Optional[UploadSource],
		on_progress: Optional[Callable[[UploadProgress], None]] = None,
		on_status: Optional[Callable[[str], None]] = None,
	) -> ProcessingResult:
		await PresignedUploader(self.api).upload(source, on_progress=on_progress)
		return await self.process(source.name, on_status)
