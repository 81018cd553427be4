import asyncio
import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthsync.core import constants
from healthsync.server.db.models import ProcessingTask, Upload
from healthsync.server.services import storage
from healthsync.server.services.uploads import UploadManager, get_upload_manager

logger = logging.getLogger(__name__)


def new_processing_id() -> str:
	return f"process_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class ProcessingManager:
	"""Runs processing jobs for assembled uploads on background asyncio tasks."""

	def __init__(
		self,
		session_factory: Optional[async_sessionmaker] = None,
		upload_manager: Optional[UploadManager] = None,
	) -> None:
		self.session_factory = session_factory
		self.upload_manager = upload_manager or get_upload_manager()
		self.tasks: Set[asyncio.Task] = set()

	def _sessions(self) -> async_sessionmaker:
		if self.session_factory is None:
			from healthsync.server.db.session import AsyncSessionLocal
			self.session_factory = AsyncSessionLocal
		return self.session_factory

	async def stop(self) -> None:
		for task in list(self.tasks):
			task.cancel()
		if self.tasks:
			await asyncio.gather(*self.tasks, return_exceptions=True)
		self.tasks.clear()

	async def wait_idle(self) -> None:
		if self.tasks:
			await asyncio.gather(*list(self.tasks), return_exceptions=True)

	async def create_task(self, session: AsyncSession, upload: Upload) -> ProcessingTask:
		task = ProcessingTask(
			id=new_processing_id(),
			upload_id=upload.id,
			status=constants.STATUS_PROCESSING,
			progress="Queued for processing",
		)
		session.add(task)
		await session.commit()
		logger.info("processing task created", extra={"processing_id": task.id, "upload_id": upload.id})
		return task

	def schedule(self, processing_id: str) -> None:
		job = asyncio.create_task(self.run(processing_id))
		self.tasks.add(job)
		job.add_done_callback(self.tasks.discard)

	async def run(self, processing_id: str) -> None:
		async with self._sessions()() as session:
			task = await session.get(ProcessingTask, processing_id)
			if task is None:
				logger.error(f"Processing task {processing_id} not found")
				return
			upload = await session.get(Upload, task.upload_id)
			try:
				if upload is None:
					raise RuntimeError("Upload no longer exists")
				await self._process(session, task, upload)
			except asyncio.CancelledError:
				raise
			except Exception as e:
				logger.exception("processing failed", extra={"processing_id": processing_id})
				await session.rollback()
				task = await session.get(ProcessingTask, processing_id, populate_existing=True)
				task.status = constants.STATUS_ERROR
				task.error_message = str(e) or type(e).__name__
				task.progress = None
				task.completed_at = datetime.now(timezone.utc)
				session.add(task)
				await session.commit()

	async def _set_progress(self, session: AsyncSession, task: ProcessingTask, progress: str) -> None:
		task.progress = progress
		session.add(task)
		await session.commit()

	async def _process(self, session: AsyncSession, task: ProcessingTask, upload: Upload) -> None:
		if upload.status == constants.STATUS_RECEIVING:
			await self._set_progress(session, task, f"Assembling {upload.total_chunks} chunks")
			upload = await self.upload_manager.assemble(session, upload)

		await self._set_progress(session, task, "Scanning records")
		records = await asyncio.to_thread(storage.count_records, upload.path)

		task.results = [
			{"message": f"Assembled {upload.file_name} from {upload.total_chunks} chunks ({upload.size_bytes} bytes)"},
			{"message": f"Found {records} records"},
		]
		task.status = constants.STATUS_COMPLETED
		task.progress = None
		task.message = "Processing completed successfully"
		task.completed_at = datetime.now(timezone.utc)
		session.add(task)
		await session.commit()
		logger.info("processing completed", extra={"processing_id": task.id, "upload_id": upload.id, "records": records})


# Create a global instance that will be initialized lazily
_processing_manager = None


def get_processing_manager() -> ProcessingManager:
	"""Get the global processing manager instance, creating it if necessary."""
	global _processing_manager
	if _processing_manager is None:
		_processing_manager = ProcessingManager()
	return _processing_manager
