"""Sales requests API."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from sales_helper.api.dependencies import get_lifecycle_manager, get_request_repository
from sales_helper.lifecycle.manager import RequestLifecycleManager
from sales_helper.repositories.request import RequestRepository
from sales_helper.repositories.submission import SubmissionRepository
from sales_helper.schemas.request import (
    LineItem,
    RequestCreate,
    RequestStatus,
    RequestUpdate,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/requests", tags=["requests"])


@router.get("")
async def list_requests(
    status: Optional[RequestStatus] = Query(None, description="draft | submitted | failed"),
    mine_group: Optional[str] = Query(None, alias="mineGroup"),
    mine_name: Optional[str] = Query(None, alias="mineName"),
    person_id: Optional[int] = Query(None, alias="personId"),
    salesperson: Optional[str] = Query(None, description="Salesperson name or 'all'"),
    show_all: bool = Query(False, alias="showAll"),
    limit: int = Query(50, ge=1, le=200),
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    """List requests, newest first.

    Returns:
        {"ok": true, "data": [...], "showNewButton": bool, "filters": {...}}
    """
    records = await repo.list_requests(
        status=status,
        mine_group=mine_group,
        mine_name=mine_name,
        person_id=person_id,
        salesperson=salesperson,
        show_all=show_all,
        limit=limit,
    )
    logger.info("requests_listed", count=len(records), salesperson=salesperson, show_all=show_all)

    return {
        "ok": True,
        "data": [record.to_api() for record in records],
        "showNewButton": not show_all,
        "filters": {"salesperson": salesperson, "showAll": show_all},
    }


@router.post("", status_code=201)
async def create_request(
    data: RequestCreate,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    record = await repo.create(data)
    await repo.db.commit()
    return {"ok": True, "data": record.to_api()}


@router.get("/{id}")
async def get_request(
    id: str,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    record = await repo.get(id)
    return {"ok": True, "data": record.to_api()}


@router.patch("/{id}")
async def update_request(
    id: str,
    data: RequestUpdate,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    """Inline edit of contact, line items, comment or salesperson."""
    record = await repo.update(id, data.changes())
    await repo.db.commit()
    return {"ok": True, "data": record.to_api()}


@router.post("/{id}/line-items")
async def add_line_item(
    id: str,
    item: LineItem,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    record = await repo.add_line_item(id, item)
    await repo.db.commit()
    return {
        "ok": True,
        "data": record.to_api(),
        "message": "Line item added successfully",
    }


@router.get("/{id}/submission-check")
async def submission_check(
    id: str,
    repo: RequestRepository = Depends(get_request_repository),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
) -> dict:
    record = await repo.get(id)
    return {"ok": True, "data": manager.validate_for_submission(record).to_dict()}


@router.get("/{id}/submissions")
async def list_submissions(
    id: str,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    """Submission attempts for a request, newest first."""
    record = await repo.get(id)
    entries = await SubmissionRepository(repo.db).for_request(record.request_id)
    return {
        "ok": True,
        "data": [
            {
                "id": str(entry.id),
                "mode": entry.mode,
                "dealId": entry.deal_id,
                "succeeded": entry.succeeded,
                "retryable": entry.retryable,
                "error": entry.error,
                "createdAt": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }


@router.delete("/{id}")
async def delete_request(
    id: str,
    repo: RequestRepository = Depends(get_request_repository),
) -> dict:
    """Delete a draft request."""
    await repo.delete(id)
    await repo.db.commit()
    return {"ok": True}
