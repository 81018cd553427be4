import hashlib
import os
import shutil
import uuid
from typing import Iterable, Tuple

from healthsync.core.config import settings


def chunk_dir() -> str:
	return os.path.join(settings.STORAGE_DIR, "chunks")


def assembled_dir() -> str:
	return os.path.join(settings.STORAGE_DIR, "uploads")


def ensure_directories() -> None:
	os.makedirs(chunk_dir(), exist_ok=True)
	os.makedirs(assembled_dir(), exist_ok=True)


def get_safe_filename(filename: str) -> str:
	dangerous_chars = ['<', '>', ':', '"', '|', '?', '*', '\\', '/']
	safe_name = os.path.basename(filename.replace("\\", "/"))
	for char in dangerous_chars:
		safe_name = safe_name.replace(char, '_')
	return safe_name or "upload.dat"


def chunk_path(upload_id: str, chunk_number: int) -> str:
	return os.path.join(chunk_dir(), upload_id, f"{chunk_number:06d}.part")


def save_chunk(upload_id: str, chunk_number: int, data: bytes) -> Tuple[str, str]:
	"""Write one chunk to disk, replacing any earlier copy; returns (path, sha256)."""
	path = chunk_path(upload_id, chunk_number)
	os.makedirs(os.path.dirname(path), exist_ok=True)
	tmp_path = f"{path}.{uuid.uuid4().hex}.tmp"
	with open(tmp_path, "wb") as out:
		out.write(data)
	os.replace(tmp_path, path)
	return path, hashlib.sha256(data).hexdigest()


def generate_file_destination(upload_id: str, original_filename: str) -> str:
	name, ext = os.path.splitext(get_safe_filename(original_filename))
	return os.path.join(assembled_dir(), f"{upload_id}{ext or '.dat'}")


def assemble_chunks(chunk_paths: Iterable[str], dst_path: str) -> Tuple[int, str]:
	"""Concatenate chunk files in the given order; returns (size, sha256)."""
	os.makedirs(os.path.dirname(dst_path), exist_ok=True)
	digest = hashlib.sha256()
	size = 0
	with open(dst_path, "wb") as out:
		for path in chunk_paths:
			with open(path, "rb") as part:
				while True:
					block = part.read(1024 * 1024)
					if not block:
						break
					digest.update(block)
					size += len(block)
					out.write(block)
	return size, digest.hexdigest()


def remove_chunks(upload_id: str) -> None:
	shutil.rmtree(os.path.join(chunk_dir(), upload_id), ignore_errors=True)


def blob_path(key: str) -> str:
	safe_parts = [get_safe_filename(part) for part in key.split("/") if part not in ("", ".", "..")]
	return os.path.join(settings.STORAGE_DIR, "blobs", *safe_parts)


def count_records(path: str) -> int:
	"""Count newline-terminated records without loading the file."""
	records = 0
	last_block = b""
	with open(path, "rb") as fb:
		while True:
			block = fb.read(1024 * 1024)
			if not block:
				break
			records += block.count(b"\n")
			last_block = block
	if last_block and not last_block.endswith(b"\n"):
		records += 1
	return records
