from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from healthsync.core.config import settings

# Create declarative base
Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
	if database_url.startswith("sqlite"):
		# SQLite-specific settings: one connection serialises writers
		return create_async_engine(
			database_url,
			echo=echo,
			pool_size=1,
			max_overflow=0,
			pool_timeout=30.0,
			connect_args={
				"timeout": 30.0,
				"check_same_thread": False,
			}
		)
	# PostgreSQL settings with configurable pool
	return create_async_engine(
		database_url,
		echo=echo,
		pool_size=settings.DB_POOL_SIZE,
		max_overflow=settings.DB_MAX_OVERFLOW,
		pool_timeout=max(30.0, settings.DB_POOL_TIMEOUT),
		pool_pre_ping=True,
		connect_args={
			"server_settings": {
				"application_name": "healthsync",
				"statement_timeout": "60000"
			},
			"command_timeout": 60,
			"timeout": 10,
		}
	)


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

AsyncSessionLocal = async_sessionmaker(
	engine, class_=AsyncSession, expire_on_commit=False
)


async def get_session() -> AsyncIterator[AsyncSession]:
	async with AsyncSessionLocal() as session:
		try:
			yield session
		finally:
			await session.close()
