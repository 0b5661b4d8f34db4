"""Request, Contact and LineItem schemas.

Contact and line item payloads travel in camelCase (``personId``,
``mineGroup``, ``unitPrice``) to match the stored JSONB and the client.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from sales_helper.errors import ShapeError

REQUEST_ID_PATTERN = r"^QR-\d{3,}$"
COMMENT_MAX_LENGTH = 2000


class RequestStatus(str, Enum):
    """Lifecycle states: draft → submitted | failed, failed → submitted."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    FAILED = "failed"


class Salesperson(str, Enum):
    LUYANDA = "Luyanda"
    JAMES = "James"
    STEFAN = "Stefan"


def format_request_id(counter: int) -> str:
    """Render a counter value as a request code, e.g. 7 → ``QR-007``."""
    return f"QR-{counter:03d}"


def parse_request_id(request_id: str) -> int:
    """Inverse of :func:`format_request_id`."""
    if not re.match(REQUEST_ID_PATTERN, request_id):
        raise ValueError(f"Invalid request ID format: {request_id!r}")
    return int(request_id[3:])


def _reject_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("must not be empty or whitespace only")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Contact(CamelModel):
    """CRM person attached to a request; always carries both mine fields."""

    person_id: int = Field(gt=0)
    name: str = Field(min_length=1)
    mine_group: str = Field(min_length=1)
    mine_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    org_id: Optional[int] = Field(default=None, gt=0)
    org_name: Optional[str] = None

    @field_validator("name", "mine_group", "mine_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _reject_blank(value)


class LineItem(CamelModel):
    product_id: int = Field(
        gt=0,
        validation_alias=AliasChoices("productId", "pipedriveProductId", "product_id"),
        serialization_alias="productId",
    )
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    unit_price: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("unitPrice", "price", "unit_price"),
        serialization_alias="unitPrice",
    )
    total_price: Optional[float] = Field(default=None, ge=0)
    code: Optional[str] = None
    category: Optional[str] = None
    short_description: Optional[str] = None
    custom_description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        return _reject_blank(value)

    @model_validator(mode="after")
    def _fill_total(self) -> "LineItem":
        if self.total_price is None:
            self.total_price = round(self.quantity * self.unit_price, 2)
        return self


class RequestRecord(CamelModel):
    """A stored request as handed to the lifecycle manager; camelCase on the API."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    request_id: str = Field(pattern=REQUEST_ID_PATTERN)
    status: RequestStatus = RequestStatus.DRAFT
    salesperson_first_name: Optional[str] = None
    salesperson_selection: Optional[Salesperson] = None
    mine_group: Optional[str] = None
    mine_name: Optional[str] = None
    contact: Optional[Contact] = None
    line_items: list[LineItem] = []
    comment: Optional[str] = None
    pipedrive_deal_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _deal_id_matches_status(self) -> "RequestRecord":
        if self.status == RequestStatus.SUBMITTED and self.pipedrive_deal_id is None:
            raise ValueError("submitted request must have a pipedrive_deal_id")
        if self.status != RequestStatus.SUBMITTED and self.pipedrive_deal_id is not None:
            raise ValueError(f"{self.status.value} request must not have a pipedrive_deal_id")
        return self

    @classmethod
    def from_row(cls, row: Any) -> "RequestRecord":
        """Validate an ORM row or mapping; raise ShapeError on any mismatch."""
        try:
            if isinstance(row, dict):
                return cls.model_validate(row)
            return cls.model_validate(row, from_attributes=True)
        except PydanticValidationError as e:
            raise ShapeError(
                "Stored request failed validation",
                data={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def to_api(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# API payloads


class RequestCreate(BaseModel):
    salesperson_first_name: Optional[str] = Field(
        default=None,
        max_length=100,
        validation_alias=AliasChoices("salespersonFirstName", "salesperson_first_name"),
    )
    salesperson_selection: Optional[Salesperson] = Field(
        default=None,
        validation_alias=AliasChoices("salespersonSelection", "salesperson_selection"),
    )

    @field_validator("salesperson_first_name")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _reject_blank(value)

    @model_validator(mode="after")
    def _require_salesperson(self) -> "RequestCreate":
        if not self.salesperson_selection and not self.salesperson_first_name:
            raise ValueError(
                "Either salesperson selection or salesperson first name is required"
            )
        return self


class RequestUpdate(BaseModel):
    """Partial edit; only fields present in the body are applied.

    An explicit ``"contact": null`` clears the contact.
    """

    salesperson_first_name: Optional[str] = Field(
        default=None,
        max_length=100,
        validation_alias=AliasChoices("salespersonFirstName", "salesperson_first_name"),
    )
    salesperson_selection: Optional[Salesperson] = Field(
        default=None,
        validation_alias=AliasChoices("salespersonSelection", "salesperson_selection"),
    )
    contact: Optional[Contact] = None
    line_items: Optional[list[LineItem]] = Field(
        default=None,
        validation_alias=AliasChoices("lineItems", "line_items"),
    )
    comment: Optional[str] = Field(default=None, max_length=COMMENT_MAX_LENGTH)

    @field_validator("salesperson_first_name")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _reject_blank(value)

    @field_validator("line_items")
    @classmethod
    def _line_items_not_null(cls, value: Optional[list[LineItem]]) -> Optional[list[LineItem]]:
        if value is None:
            raise ValueError("line_items cannot be null; send [] to clear")
        return value

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class SubmitBody(BaseModel):
    id: Optional[uuid.UUID] = None
    request_id: Optional[str] = Field(
        default=None,
        pattern=REQUEST_ID_PATTERN,
        validation_alias=AliasChoices("requestId", "request_id"),
    )

    @model_validator(mode="after")
    def _require_identifier(self) -> "SubmitBody":
        if self.id is None and self.request_id is None:
            raise ValueError("Must provide either id or requestId")
        return self
