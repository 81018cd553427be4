import asyncio
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional

from healthsync.client.api import UploadApiClient
from healthsync.client.checksum import safe_digest
from healthsync.client.models import ChunkDescriptor, FinalAck, ProgressTracker, ServerAck, UploadProgress, UploadSource
from healthsync.client.observer import LoggingObserver, UploadObserver
from healthsync.client.planner import plan_chunks
from healthsync.client.retry import CancellationToken, RetryPolicy, Sleep
from healthsync.client.transmitter import ChunkTransmitter
from healthsync.client.validation import ensure_valid
from healthsync.core.config import settings
from healthsync.core.exceptions import TransferCancelled, UploadError


@dataclass
class UploadOptions:
	chunk_size: Optional[int] = None
	max_retries: Optional[int] = None
	max_parallel: Optional[int] = None
	max_file_bytes: Optional[int] = None
	on_progress: Optional[Callable[[UploadProgress], None]] = None
	on_error: Optional[Callable[[UploadError], None]] = None
	on_chunk_complete: Optional[Callable[[ChunkDescriptor, ServerAck], None]] = None
	cancel_token: CancellationToken = field(default_factory=CancellationToken)


def group_chunks(chunks: Iterable[ChunkDescriptor], group_size: int) -> Iterator[List[ChunkDescriptor]]:
	"""Cut the plan into consecutive groups, pulling only one group at a time."""
	if group_size < 1:
		raise ValueError("group_size must be at least 1")
	group: List[ChunkDescriptor] = []
	for descriptor in chunks:
		group.append(descriptor)
		if len(group) == group_size:
			yield group
			group = []
	if group:
		yield group


class UploadCoordinator:
	"""Uploads a whole file as groups of concurrently sent chunks.

	Groups run strictly in plan order and each group is awaited in full
	before the next starts, so the last chunk is only acknowledged after
	every earlier chunk succeeded.
	"""

	def __init__(
		self,
		api: UploadApiClient,
		observer: Optional[UploadObserver] = None,
		sleep: Sleep = asyncio.sleep,
	) -> None:
		self.api = api
		self.observer = observer or LoggingObserver()
		self.sleep = sleep

	async def upload(self, source: Optional[UploadSource], options: Optional[UploadOptions] = None) -> FinalAck:
		opts = options or UploadOptions()
		try:
			return await self._upload(source, opts)
		except UploadError as e:
			if isinstance(e, TransferCancelled) and source is not None:
				self.observer.upload_cancelled(source.name, e.message)
			if opts.on_error:
				opts.on_error(e)
			raise

	async def _upload(self, source: Optional[UploadSource], opts: UploadOptions) -> FinalAck:
		source = ensure_valid(source, opts.max_file_bytes)
		token = opts.cancel_token
		tracker = ProgressTracker(source.size)
		transmitter = ChunkTransmitter(
			self.api,
			policy=RetryPolicy.for_chunks(opts.max_retries),
			observer=self.observer,
			sleep=self.sleep,
			tracker=tracker,
			on_progress=opts.on_progress,
			on_chunk_complete=opts.on_chunk_complete,
		)
		parallel = opts.max_parallel or settings.MAX_PARALLEL_UPLOADS

		final_ack: Optional[FinalAck] = None
		for group_index, group in enumerate(group_chunks(plan_chunks(source, opts.chunk_size), parallel)):
			token.raise_if_cancelled(group=group_index, chunk_number=group[0].chunk_number)
			acks = await self._send_group(transmitter, group, source.name, token)
			for descriptor, ack in zip(group, acks):
				if descriptor.is_last_chunk:
					final_ack = FinalAck(
						file_name=source.name,
						chunk_number=descriptor.chunk_number,
						total_chunks=descriptor.total_chunks,
						body=ack.body,
					)
		if final_ack is None:
			raise UploadError("Upload finished without acknowledging the last chunk", details={"file_name": source.name})
		return final_ack

	async def _send_group(
		self,
		transmitter: ChunkTransmitter,
		group: List[ChunkDescriptor],
		file_name: str,
		token: CancellationToken,
	) -> List[ServerAck]:
		tasks = [
			asyncio.ensure_future(transmitter.send(d, safe_digest(d.data), file_name, token))
			for d in group
		]
		try:
			done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
		except asyncio.CancelledError:
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			raise

		errors = [t.exception() for t in tasks if t in done and t.exception() is not None]
		if errors:
			# One unrecovered chunk ends the group; the rest are aborted, not retried.
			for task in pending:
				task.cancel()
			await asyncio.gather(*pending, return_exceptions=True)
			for error in errors:
				if isinstance(error, TransferCancelled):
					raise error
			raise errors[0]
		return [t.result() for t in tasks]
