"""CRUD and status writes for sales requests.

Mutations lock the row (``SELECT … FOR UPDATE``) before checking the
lifecycle guards, so concurrent edits of one request apply one at a time.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional, Union

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from sales_helper.config import settings
from sales_helper.errors import InvalidTransition, NotFoundError
from sales_helper.lifecycle.manager import ensure_deletable, ensure_editable, next_status
from sales_helper.models.request import Request, RequestCounter
from sales_helper.schemas.request import (
    Contact,
    LineItem,
    RequestCreate,
    RequestRecord,
    RequestStatus,
    format_request_id,
)

logger = structlog.get_logger()

REQUEST_COUNTER = "requests"


class RequestRepository:
    """Loads and stores requests; every value out is a validated RequestRecord."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_request_code(self) -> str:
        """Allocate the next ``QR-###`` code atomically."""
        start = settings.request_counter_start
        stmt = (
            insert(RequestCounter)
            .values(name=REQUEST_COUNTER, value=start)
            .on_conflict_do_update(
                index_elements=[RequestCounter.name],
                set_={"value": RequestCounter.value + 1},
            )
            .returning(RequestCounter.value)
        )
        value = (await self.db.execute(stmt)).scalar_one()
        return format_request_id(value)

    async def create(self, data: RequestCreate) -> RequestRecord:
        row = Request(
            request_id=await self.next_request_code(),
            status=RequestStatus.DRAFT.value,
            salesperson_first_name=data.salesperson_first_name,
            salesperson_selection=(
                data.salesperson_selection.value if data.salesperson_selection else None
            ),
            contact=None,
            line_items=[],
        )
        self.db.add(row)
        await self.db.flush()
        await self.db.refresh(row)

        logger.info(
            "request_created",
            id=str(row.id),
            request_id=row.request_id,
            salesperson=row.salesperson_selection or row.salesperson_first_name,
        )
        return RequestRecord.from_row(row)

    async def get(self, id: Union[uuid.UUID, str], for_update: bool = False) -> RequestRecord:
        return RequestRecord.from_row(await self._row(Request.id == _as_uuid(id), for_update))

    async def get_by_request_id(self, request_id: str, for_update: bool = False) -> RequestRecord:
        return RequestRecord.from_row(await self._row(Request.request_id == request_id, for_update))

    async def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        mine_group: Optional[str] = None,
        mine_name: Optional[str] = None,
        person_id: Optional[int] = None,
        salesperson: Optional[str] = None,
        show_all: bool = False,
        limit: int = 50,
    ) -> list[RequestRecord]:
        """Newest first. ``salesperson`` is ignored when ``show_all`` is set."""
        stmt = select(Request)

        if not show_all and salesperson and salesperson != "all":
            stmt = stmt.where(Request.salesperson_selection == salesperson)
        if status:
            stmt = stmt.where(Request.status == status.value)
        if mine_group:
            stmt = stmt.where(Request.mine_group == mine_group)
        if mine_name:
            stmt = stmt.where(Request.mine_name == mine_name)
        if person_id is not None:
            stmt = stmt.where(Request.contact["personId"].astext == str(person_id))

        stmt = stmt.order_by(Request.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return [RequestRecord.from_row(row) for row in result.scalars().all()]

    async def update(self, id: Union[uuid.UUID, str], changes: dict[str, Any]) -> RequestRecord:
        """Apply field edits; refused once the request is submitted."""
        row = await self._row(Request.id == _as_uuid(id), for_update=True)
        ensure_editable(RequestRecord.from_row(row))

        if "contact" in changes:
            _apply_contact(row, changes["contact"])
        if "line_items" in changes:
            row.line_items = [_dump_item(item) for item in changes["line_items"]]
        if "comment" in changes:
            row.comment = changes["comment"]
        if "salesperson_first_name" in changes:
            row.salesperson_first_name = changes["salesperson_first_name"]
        if "salesperson_selection" in changes:
            selection = changes["salesperson_selection"]
            row.salesperson_selection = selection.value if selection else None

        record = await self._save(row)
        logger.info("request_updated", request_id=record.request_id, fields=sorted(changes))
        return record

    async def add_line_item(self, id: Union[uuid.UUID, str], item: LineItem) -> RequestRecord:
        row = await self._row(Request.id == _as_uuid(id), for_update=True)
        ensure_editable(RequestRecord.from_row(row))

        row.line_items = [*(row.line_items or []), _dump_item(item)]
        record = await self._save(row)
        logger.info(
            "line_item_added",
            request_id=record.request_id,
            product_id=item.product_id,
            line_items=len(record.line_items),
        )
        return record

    async def delete(self, id: Union[uuid.UUID, str]) -> RequestRecord:
        row = await self._row(Request.id == _as_uuid(id), for_update=True)
        record = RequestRecord.from_row(row)
        ensure_deletable(record)

        await self.db.delete(row)
        await self.db.flush()
        logger.info("request_deleted", request_id=record.request_id)
        return record

    async def mark_submitted(self, record: RequestRecord, deal_id: int) -> None:
        await self._set_status(record, next_status(record.status, succeeded=True), deal_id)

    async def mark_failed(self, record: RequestRecord) -> None:
        await self._set_status(record, next_status(record.status, succeeded=False), None)

    async def _set_status(
        self,
        record: RequestRecord,
        status: RequestStatus,
        deal_id: Optional[int],
    ) -> None:
        # Guarded on status so a request can never leave "submitted".
        stmt = (
            update(Request)
            .where(
                Request.id == record.id,
                Request.status != RequestStatus.SUBMITTED.value,
            )
            .values(status=status.value, pipedrive_deal_id=deal_id)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Request {record.request_id} is no longer open for submission"
            )
        logger.info(
            "request_status_changed",
            request_id=record.request_id,
            status=status.value,
            deal_id=deal_id,
        )

    async def _row(self, clause, for_update: bool = False) -> Request:
        stmt = select(Request).where(clause)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.db.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Request not found")
        return row

    async def _save(self, row: Request) -> RequestRecord:
        await self.db.flush()
        await self.db.refresh(row)
        return RequestRecord.from_row(row)


def _as_uuid(value: Union[uuid.UUID, str]) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise NotFoundError("Request not found") from e


def _apply_contact(row: Request, contact: Optional[Contact]) -> None:
    if contact is None:
        row.contact = None
        row.mine_group = None
        row.mine_name = None
        return
    row.contact = contact.model_dump(mode="json", by_alias=True, exclude_none=True)
    row.mine_group = contact.mine_group
    row.mine_name = contact.mine_name


def _dump_item(item: LineItem) -> dict:
    return item.model_dump(mode="json", by_alias=True, exclude_none=True)
