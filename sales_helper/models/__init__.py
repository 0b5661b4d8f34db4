"""SQLAlchemy ORM models."""

from sales_helper.models.base import Base
from sales_helper.models.request import Request, RequestCounter
from sales_helper.models.submission import PipedriveSubmission

__all__ = [
    "Base",
    "Request",
    "RequestCounter",
    "PipedriveSubmission",
]
