import asyncio
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from healthsync.core import constants
from healthsync.core.config import settings
from healthsync.server.db.models import Upload, UploadChunk
from healthsync.server.services import storage

logger = logging.getLogger(__name__)


class MissingChunksError(Exception):
	def __init__(self, found: int, expected: int) -> None:
		super().__init__(f"Missing chunks. Found {found} of {expected} expected chunks.")
		self.found = found
		self.expected = expected


class UploadManager:
	"""Receives chunks, records them, and stitches complete uploads together."""

	def __init__(self) -> None:
		self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

	async def _commit_with_retry(self, session: AsyncSession, *entities) -> None:
		max_retries = 5
		for attempt in range(max_retries):
			try:
				await session.commit()
				return
			except (OperationalError, DisconnectionError) as e:
				if attempt < max_retries - 1:
					await session.rollback()
					for entity in entities:
						session.add(entity)
					await asyncio.sleep(0.1 * (2 ** attempt))
					logger.warning(f"Database connection issue, retrying {attempt + 1}/{max_retries}: {e}")
				else:
					raise

	async def _open_upload(self, session: AsyncSession, file_name: str, total_chunks: int) -> Upload:
		result = await session.execute(
			select(Upload)
			.where(
				Upload.file_name == file_name,
				Upload.status == constants.STATUS_RECEIVING,
				Upload.total_chunks == total_chunks,
			)
			.order_by(Upload.created_at.desc())
			.limit(1)
		)
		upload = result.scalar_one_or_none()
		if upload is None:
			upload = Upload(file_name=file_name, total_chunks=total_chunks, status=constants.STATUS_RECEIVING)
			session.add(upload)
			await self._commit_with_retry(session, upload)
			logger.info("upload opened", extra={"upload_id": upload.id, "file_name": file_name, "total_chunks": total_chunks})
		return upload

	async def receive_chunk(
		self,
		session: AsyncSession,
		file_name: str,
		chunk_number: int,
		total_chunks: int,
		data: bytes,
		client_checksum: Optional[str] = None,
	) -> Tuple[Upload, UploadChunk, int]:
		"""Store one chunk; re-sending a chunk replaces the earlier copy."""
		async with self._locks[file_name]:
			upload = await self._open_upload(session, file_name, total_chunks)
			path, checksum = await asyncio.to_thread(storage.save_chunk, upload.id, chunk_number, data)

			result = await session.execute(
				select(UploadChunk).where(UploadChunk.upload_id == upload.id, UploadChunk.chunk_number == chunk_number)
			)
			chunk = result.scalar_one_or_none()
			if chunk is None:
				chunk = UploadChunk(upload_id=upload.id, chunk_number=chunk_number, size_bytes=len(data), checksum=checksum, path=path)
			chunk.size_bytes = len(data)
			chunk.checksum = checksum
			chunk.client_checksum = client_checksum or None
			chunk.path = path
			session.add(chunk)
			await self._commit_with_retry(session, chunk)

			received = await self.count_chunks(session, upload.id)

		if client_checksum and client_checksum.lower() != checksum:
			logger.warning(
				"chunk checksum mismatch",
				extra={"upload_id": upload.id, "chunk_number": chunk_number, "client_checksum": client_checksum, "checksum": checksum},
			)
		logger.info("chunk stored", extra={"upload_id": upload.id, "chunk_number": chunk_number, "received": received, "total_chunks": total_chunks})
		return upload, chunk, received

	def _release_lock(self, file_name: str) -> None:
		# Later chunks for this name open a new upload and get a fresh lock.
		lock = self._locks.get(file_name)
		if lock is not None and not lock.locked():
			del self._locks[file_name]

	async def count_chunks(self, session: AsyncSession, upload_id: str) -> int:
		result = await session.execute(select(func.count(UploadChunk.id)).where(UploadChunk.upload_id == upload_id))
		return result.scalar() or 0

	async def find_upload(self, session: AsyncSession, file_name: Optional[str] = None) -> Optional[Upload]:
		query = select(Upload)
		if file_name:
			query = query.where(Upload.file_name == file_name)
		result = await session.execute(query.order_by(Upload.updated_at.desc(), Upload.created_at.desc()).limit(1))
		return result.scalar_one_or_none()

	async def assemble(
		self,
		session: AsyncSession,
		upload: Upload,
		on_progress: Optional[Callable[[str], None]] = None,
	) -> Upload:
		"""Concatenate stored chunks in chunk-number order into one file."""
		if upload.status != constants.STATUS_RECEIVING:
			return upload

		result = await session.execute(
			select(UploadChunk).where(UploadChunk.upload_id == upload.id).order_by(UploadChunk.chunk_number)
		)
		chunks: List[UploadChunk] = list(result.scalars().all())
		numbers = [c.chunk_number for c in chunks]
		if numbers != list(range(upload.total_chunks)):
			raise MissingChunksError(len(chunks), upload.total_chunks)

		if on_progress:
			on_progress(f"Assembling {len(chunks)} chunks")
		dst_path = storage.generate_file_destination(upload.id, upload.file_name)
		size, checksum = await asyncio.to_thread(storage.assemble_chunks, [c.path for c in chunks], dst_path)

		upload.path = dst_path
		upload.size_bytes = size
		upload.checksum = checksum
		upload.status = constants.STATUS_ASSEMBLED
		session.add(upload)
		await self._commit_with_retry(session, upload)
		self._release_lock(upload.file_name)

		if settings.DELETE_CHUNKS_ON_ASSEMBLE:
			await asyncio.to_thread(storage.remove_chunks, upload.id)
		logger.info("upload assembled", extra={"upload_id": upload.id, "size": size, "total_chunks": len(chunks)})
		return upload

	async def register_blob(self, session: AsyncSession, file_name: str, path: str, size: int, checksum: str) -> Upload:
		upload = Upload(
			file_name=file_name,
			path=path,
			status=constants.STATUS_ASSEMBLED,
			total_chunks=1,
			size_bytes=size,
			checksum=checksum,
		)
		session.add(upload)
		await self._commit_with_retry(session, upload)
		return upload


_upload_manager = None


def get_upload_manager() -> UploadManager:
	"""Get the global upload manager instance, creating it if necessary."""
	global _upload_manager
	if _upload_manager is None:
		_upload_manager = UploadManager()
	return _upload_manager
