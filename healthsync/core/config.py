import os
import logging

from dotenv import load_dotenv

from healthsync.core import constants

load_dotenv()


def _normalize_async_database_url(raw_url: str) -> str:
	"""Convert synchronous database URLs to async ones and normalize host."""
	url = raw_url
	if url.startswith("sqlite://"):
		url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
	elif url.startswith("postgresql://"):
		url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
	# Normalize localhost -> 127.0.0.1 for asyncpg on Windows
	if url.startswith("postgresql+asyncpg://") and "@localhost:" in url:
		url = url.replace("@localhost:", "@127.0.0.1:")
	return url


def _env_flag(name: str, default: str) -> bool:
	return os.getenv(name, default).lower() in ("1", "true", "yes")


def setup_logging() -> None:
	"""Setup logging configuration."""
	logging.basicConfig(
		level=os.getenv("LOG_LEVEL", "INFO").upper(),
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
		handlers=[
			logging.StreamHandler(),
		]
	)

	# Set SQLAlchemy logging level
	logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
	logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)
	logging.getLogger('httpx').setLevel(logging.WARNING)


class Settings:
	def __init__(self) -> None:
		# Client side: where chunks and processing requests are sent
		self.UPLOAD_BASE_URL = os.getenv("UPLOAD_BASE_URL", "http://127.0.0.1:8000")
		self.UPLOAD_API_TOKEN = os.getenv("UPLOAD_API_TOKEN") or None

		# Upload constraints
		self.MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", str(constants.DEFAULT_MAX_UPLOAD_MB)))
		self.MAX_PARALLEL_UPLOADS = int(os.getenv("MAX_PARALLEL_UPLOADS", str(constants.DEFAULT_MAX_PARALLEL_UPLOADS)))

		# Chunk retry policy
		self.CHUNK_MAX_RETRIES = int(os.getenv("CHUNK_MAX_RETRIES", str(constants.DEFAULT_CHUNK_MAX_RETRIES)))
		self.CHUNK_TIMEOUT = float(os.getenv("CHUNK_TIMEOUT", str(constants.DEFAULT_CHUNK_TIMEOUT)))
		self.CHUNK_BASE_BACKOFF = float(os.getenv("CHUNK_BASE_BACKOFF", str(constants.DEFAULT_CHUNK_BASE_BACKOFF)))
		self.CHUNK_MAX_BACKOFF = float(os.getenv("CHUNK_MAX_BACKOFF", str(constants.DEFAULT_CHUNK_MAX_BACKOFF)))

		# Processing poll policy
		self.POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", str(constants.DEFAULT_POLL_MAX_ATTEMPTS)))
		self.POLL_INITIAL_BACKOFF = float(os.getenv("POLL_INITIAL_BACKOFF", str(constants.DEFAULT_POLL_INITIAL_BACKOFF)))
		self.POLL_BACKOFF_MULTIPLIER = float(os.getenv("POLL_BACKOFF_MULTIPLIER", str(constants.DEFAULT_POLL_BACKOFF_MULTIPLIER)))
		self.POLL_MAX_BACKOFF = float(os.getenv("POLL_MAX_BACKOFF", str(constants.DEFAULT_POLL_MAX_BACKOFF)))

		# Server side: database
		raw_db = os.getenv("DATABASE_URL", "sqlite:///./storage/healthsync.db")
		self.DATABASE_URL = _normalize_async_database_url(raw_db)
		self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
		self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
		self.DB_POOL_TIMEOUT = float(os.getenv("DB_POOL_TIMEOUT", "30.0"))
		self.DB_ECHO = _env_flag("DB_ECHO", "false")

		# Server side: chunk storage
		self.STORAGE_DIR = os.getenv("STORAGE_DIR", constants.STORAGE_DIR)
		self.MAX_CHUNK_MB = int(os.getenv("MAX_CHUNK_MB", str(constants.DEFAULT_MAX_CHUNK_MB)))
		self.DELETE_CHUNKS_ON_ASSEMBLE = _env_flag("DELETE_CHUNKS_ON_ASSEMBLE", "true")

		# Server side: presigned URLs
		self.UPLOAD_URL_SECRET = os.getenv("UPLOAD_URL_SECRET", "healthsync-dev-secret")
		self.UPLOAD_URL_TTL = int(os.getenv("UPLOAD_URL_TTL", str(constants.DEFAULT_UPLOAD_URL_TTL)))

		# Testing / runtime flags
		self.DISABLE_BACKGROUND = os.getenv("DISABLE_BACKGROUND", "0") == "1"

	@property
	def max_upload_bytes(self) -> int:
		return self.MAX_UPLOAD_MB * constants.MIB

	@property
	def max_chunk_bytes(self) -> int:
		return self.MAX_CHUNK_MB * constants.MIB


# Setup logging when module is imported
setup_logging()
settings = Settings()
