"""Sales request and request-code counter models."""

from typing import Optional

from sqlalchemy import CheckConstraint, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sales_helper.models.base import Base, TimestampMixin, UUIDMixin


class Request(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'failed')",
            name="ck_requests_status",
        ),
        CheckConstraint(
            "(status = 'submitted') = (pipedrive_deal_id IS NOT NULL)",
            name="ck_requests_deal_id_matches_status",
        ),
        Index("ix_requests_created_at", "created_at"),
        Index("ix_requests_status", "status"),
        Index("ix_requests_salesperson", "salesperson_selection"),
    )

    request_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)

    # Salesperson
    salesperson_first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    salesperson_selection: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Denormalized from contact for filtering
    mine_group: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    mine_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    contact: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    line_items: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    pipedrive_deal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class RequestCounter(Base):
    """Allocates QR-### codes; one row per counter name."""

    __tablename__ = "request_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
