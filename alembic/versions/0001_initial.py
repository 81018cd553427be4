"""create uploads, upload_chunks and processing_tasks

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""
import sqlalchemy as sa
from alembic import op

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
	op.create_table(
		"uploads",
		sa.Column("id", sa.String(36), primary_key=True),
		sa.Column("file_name", sa.String(255), nullable=False),
		sa.Column("path", sa.Text(), nullable=True),
		sa.Column("status", sa.String(32), nullable=False),
		sa.Column("total_chunks", sa.Integer(), nullable=False),
		sa.Column("size_bytes", sa.Integer(), nullable=False),
		sa.Column("checksum", sa.String(64), nullable=True),
		sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
		sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
	)
	op.create_index("ix_uploads_file_name", "uploads", ["file_name"])

	op.create_table(
		"upload_chunks",
		sa.Column("id", sa.String(36), primary_key=True),
		sa.Column("upload_id", sa.String(36), sa.ForeignKey("uploads.id", ondelete="CASCADE")),
		sa.Column("chunk_number", sa.Integer(), nullable=False),
		sa.Column("size_bytes", sa.Integer(), nullable=False),
		sa.Column("checksum", sa.String(64), nullable=False),
		sa.Column("client_checksum", sa.String(64), nullable=True),
		sa.Column("path", sa.Text(), nullable=False),
		sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
		sa.UniqueConstraint("upload_id", "chunk_number", name="uq_upload_chunk_number"),
	)
	op.create_index("ix_upload_chunks_upload_id", "upload_chunks", ["upload_id"])

	op.create_table(
		"processing_tasks",
		sa.Column("id", sa.String(64), primary_key=True),
		sa.Column("upload_id", sa.String(36), sa.ForeignKey("uploads.id", ondelete="CASCADE")),
		sa.Column("status", sa.String(32), nullable=False),
		sa.Column("progress", sa.Text(), nullable=True),
		sa.Column("message", sa.Text(), nullable=True),
		sa.Column("results", sa.JSON(), nullable=True),
		sa.Column("error_message", sa.Text(), nullable=True),
		sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
		sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
	)
	op.create_index("ix_processing_tasks_upload_id", "processing_tasks", ["upload_id"])


def downgrade() -> None:
	op.drop_index("ix_processing_tasks_upload_id", table_name="processing_tasks")
	op.drop_table("processing_tasks")
	op.drop_index("ix_upload_chunks_upload_id", table_name="upload_chunks")
	op.drop_table("upload_chunks")
	op.drop_index("ix_uploads_file_name", table_name="uploads")
	op.drop_table("uploads")
