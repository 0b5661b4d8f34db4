"""Submission log: one row per CRM submit attempt."""

from typing import Optional

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sales_helper.models.base import Base, TimestampMixin, UUIDMixin


class PipedriveSubmission(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "pipedrive_submissions"
    __table_args__ = (
        Index("ix_pipedrive_submissions_request_id", "request_id"),
        Index("ix_pipedrive_submissions_created_at", "created_at"),
    )

    request_id: Mapped[str] = mapped_column(String(20), nullable=False)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)  # live|mock
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)

    deal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    succeeded: Mapped[bool] = mapped_column(Boolean, default=False)
    retryable: Mapped[bool] = mapped_column(Boolean, default=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
