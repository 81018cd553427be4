"""HMAC-signed, expiring URLs for direct single-request uploads."""
import hashlib
import hmac
import time
from typing import Optional

from healthsync.core.config import settings


def sign(key: str, expires: int, secret: Optional[str] = None) -> str:
	message = f"{key}:{expires}".encode()
	return hmac.new((secret or settings.UPLOAD_URL_SECRET).encode(), message, hashlib.sha256).hexdigest()


def make_expiry(ttl: Optional[int] = None) -> int:
	return int(time.time()) + (settings.UPLOAD_URL_TTL if ttl is None else ttl)


def verify(key: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
	if (now if now is not None else time.time()) > expires:
		return False
	return hmac.compare_digest(sign(key, expires), signature)
