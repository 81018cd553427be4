"""
Chunk planning.

Chunk numbers are 0-based and assigned when a slice is cut, so the
descriptor at ``offset`` always carries ``chunk_number == offset // chunk_size``
and the server can reassemble by sorting on it.
"""
import math
from typing import Iterator, Optional

from healthsync.client.models import ChunkDescriptor, UploadSource
from healthsync.core import constants


def choose_chunk_size(file_size: int) -> int:
	if file_size < constants.SMALL_FILE_THRESHOLD:
		target = math.ceil(file_size / constants.SMALL_FILE_TARGET_CHUNKS)
		return max(constants.MIN_CHUNK_SIZE, min(constants.STANDARD_CHUNK_SIZE, target))
	if file_size < constants.LARGE_FILE_THRESHOLD:
		return constants.STANDARD_CHUNK_SIZE
	return min(constants.MAX_CHUNK_SIZE, math.ceil(file_size / constants.LARGE_FILE_TARGET_CHUNKS))


def count_chunks(file_size: int, chunk_size: int) -> int:
	if chunk_size <= 0:
		raise ValueError("chunk_size must be positive")
	return max(1, math.ceil(file_size / chunk_size))


def plan_chunks(
	source: UploadSource,
	chunk_size: Optional[int] = None,
	start: int = 0,
) -> Iterator[ChunkDescriptor]:
	"""Yield descriptors lazily, reading each slice only when it is reached."""
	size = chunk_size or choose_chunk_size(source.size)
	total_chunks = count_chunks(source.size, size)
	if start < 0 or start >= total_chunks:
		return
	offset = start * size
	chunk_number = start
	while offset < source.size:
		length = min(size, source.size - offset)
		yield ChunkDescriptor(
			data=source.read(offset, length),
			chunk_number=chunk_number,
			total_chunks=total_chunks,
			offset=offset,
			size=length,
			is_last_chunk=offset + length >= source.size,
		)
		offset += length
		chunk_number += 1
