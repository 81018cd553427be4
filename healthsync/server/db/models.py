import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from healthsync.server.db.session import Base


def _now() -> datetime:
	return datetime.now(timezone.utc)


class Upload(Base):
	__tablename__ = "uploads"

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
	file_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
	path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
	status: Mapped[str] = mapped_column(String(32), nullable=False, default="receiving")
	total_chunks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	size_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
	created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)
	updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

	chunks: Mapped[list["UploadChunk"]] = relationship("UploadChunk", back_populates="upload", cascade="all, delete-orphan", lazy="raise")
	tasks: Mapped[list["ProcessingTask"]] = relationship("ProcessingTask", back_populates="upload", cascade="all, delete-orphan", lazy="raise")


class UploadChunk(Base):
	__tablename__ = "upload_chunks"
	__table_args__ = (UniqueConstraint("upload_id", "chunk_number", name="uq_upload_chunk_number"),)

	id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
	upload_id: Mapped[str] = mapped_column(String(36), ForeignKey("uploads.id", ondelete="CASCADE"), index=True)
	chunk_number: Mapped[int] = mapped_column(Integer, nullable=False)
	size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
	checksum: Mapped[str] = mapped_column(String(64), nullable=False)
	client_checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
	path: Mapped[str] = mapped_column(Text, nullable=False)
	created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)

	upload: Mapped["Upload"] = relationship("Upload", back_populates="chunks", lazy="raise")


class ProcessingTask(Base):
	__tablename__ = "processing_tasks"

	id: Mapped[str] = mapped_column(String(64), primary_key=True)
	upload_id: Mapped[str] = mapped_column(String(36), ForeignKey("uploads.id", ondelete="CASCADE"), index=True)
	status: Mapped[str] = mapped_column(String(32), nullable=False, default="processing")
	progress: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
	message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
	results: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
	error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
	started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, nullable=False)
	completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

	upload: Mapped["Upload"] = relationship("Upload", back_populates="tasks", lazy="raise")
