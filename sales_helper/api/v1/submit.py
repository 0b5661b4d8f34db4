"""Submit API."""

import structlog
from fastapi import APIRouter, Depends

from sales_helper.api.dependencies import get_submission_service
from sales_helper.lifecycle.submission import SubmissionService
from sales_helper.schemas.request import SubmitBody

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["submit"])


@router.post("/submit")
async def submit_request(
    body: SubmitBody,
    service: SubmissionService = Depends(get_submission_service),
) -> dict:
    """Submit a request by ``id`` or ``requestId``.

    Failures come back through the error envelope with ``retryable`` set.

    Returns:
        {"ok": true, "requestId", "dealId", "dealUrl", "mode"}
    """
    receipt = await service.submit(id=body.id, request_id=body.request_id)
    return receipt.to_dict()
