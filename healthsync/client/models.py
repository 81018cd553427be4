from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union


@dataclass
class UploadSource:
	"""A file to upload: a name, a size and random access to its bytes."""

	name: str
	size: int
	reader: Callable[[int, int], bytes] = field(repr=False)
	content_type: str = "application/octet-stream"

	@classmethod
	def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "UploadSource":
		file_path = Path(path)

		def _read(offset: int, length: int) -> bytes:
			with file_path.open("rb") as handle:
				handle.seek(offset)
				return handle.read(length)

		return cls(
			name=file_path.name,
			size=file_path.stat().st_size,
			reader=_read,
			content_type=content_type or _guess_content_type(file_path.name),
		)

	@classmethod
	def from_bytes(cls, name: str, data: bytes, content_type: Optional[str] = None) -> "UploadSource":
		return cls(
			name=name,
			size=len(data),
			reader=lambda offset, length: data[offset:offset + length],
			content_type=content_type or _guess_content_type(name),
		)

	def read(self, offset: int, length: int) -> bytes:
		data = self.reader(offset, length)
		if len(data) != length:
			raise RuntimeError("Local file missing bytes for chunked upload")
		return data


def _guess_content_type(file_name: str) -> str:
	lowered = file_name.lower()
	if lowered.endswith(".xml"):
		return "application/xml"
	if lowered.endswith(".csv"):
		return "text/csv"
	if lowered.endswith(".json"):
		return "application/json"
	if lowered.endswith(".pdf"):
		return "application/pdf"
	return "application/octet-stream"


@dataclass(frozen=True)
class ChunkDescriptor:
	data: bytes = field(repr=False)
	chunk_number: int
	total_chunks: int
	offset: int
	size: int
	is_last_chunk: bool

	@property
	def end(self) -> int:
		return self.offset + self.size


class ChunkState(str, Enum):
	PENDING = "pending"
	SENDING = "sending"
	RETRYING = "retrying"
	ACKED = "acked"
	FAILED = "failed"
	CANCELLED = "cancelled"


@dataclass(frozen=True)
class UploadProgress:
	loaded: int
	total: int
	percentage: int


class ProgressTracker:
	"""Aggregate byte counter for one upload attempt; only ever moves forward."""

	def __init__(self, total: int) -> None:
		self.total = total
		self.loaded = 0

	def advance(self, nbytes: int) -> UploadProgress:
		if nbytes > 0:
			self.loaded = min(self.total, self.loaded + nbytes)
		return self.snapshot()

	def snapshot(self) -> UploadProgress:
		if self.total <= 0:
			return UploadProgress(loaded=0, total=0, percentage=0)
		percentage = self.loaded * 100 // self.total
		return UploadProgress(loaded=self.loaded, total=self.total, percentage=min(100, percentage))


@dataclass
class ServerAck:
	chunk_number: int
	status_code: int
	body: Dict[str, Any] = field(default_factory=dict)
	attempts: int = 1

	@property
	def echoed_checksum(self) -> Optional[str]:
		value = self.body.get("checksum")
		return value or None


@dataclass
class FinalAck:
	file_name: str
	chunk_number: int
	total_chunks: int
	body: Dict[str, Any] = field(default_factory=dict)


class JobState(str, Enum):
	STARTED = "started"
	POLLING = "polling"
	COMPLETED = "completed"
	FAILED = "failed"
	TIMED_OUT = "timed_out"

	@property
	def is_terminal(self) -> bool:
		return self in (JobState.COMPLETED, JobState.FAILED, JobState.TIMED_OUT)


@dataclass
class ProcessingJob:
	processing_id: str
	state: JobState = JobState.STARTED
	last_progress_message: str = ""
	results: List[Dict[str, Any]] = field(default_factory=list)
	attempts: int = 0


@dataclass
class ProcessingResult:
	processing_id: str
	state: JobState
	message: str
	results: List[Dict[str, Any]] = field(default_factory=list)
	attempts: int = 0

	@property
	def timed_out(self) -> bool:
		return self.state is JobState.TIMED_OUT
