import hashlib
from typing import Optional


def digest(data: bytes) -> str:
	return hashlib.sha256(data).hexdigest()


def safe_digest(data: bytes) -> Optional[str]:
	"""Best-effort digest; a chunk without a checksum is still uploadable."""
	try:
		return digest(data)
	except (TypeError, ValueError, MemoryError):
		return None
