"""Runs the lifecycle manager and persists the outcome."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sales_helper.errors import SubmitError, SubmitValidationError
from sales_helper.lifecycle.manager import RequestLifecycleManager
from sales_helper.pipedrive.client import deal_url
from sales_helper.repositories.request import RequestRepository
from sales_helper.repositories.submission import SubmissionRepository
from sales_helper.schemas.request import RequestRecord

logger = structlog.get_logger()


@dataclass(frozen=True)
class SubmissionReceipt:
    request_id: str
    deal_id: int
    deal_url: str
    mode: str

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "requestId": self.request_id,
            "dealId": self.deal_id,
            "dealUrl": self.deal_url,
            "mode": self.mode,
        }


def submission_payload(record: RequestRecord) -> dict:
    """What the CRM receives, as recorded in the submission log."""
    return {
        "request_id": record.request_id,
        "contact": record.contact.model_dump(mode="json", by_alias=True) if record.contact else None,
        "line_items": [item.model_dump(mode="json", by_alias=True) for item in record.line_items],
    }


class SubmissionService:
    """Submits one request and records the result.

    The request row stays locked for the whole attempt, so two concurrent
    submits of the same request run one after the other and the second
    one sees ``submitted``.
    """

    def __init__(
        self,
        db: AsyncSession,
        manager: RequestLifecycleManager,
        requests: Optional[RequestRepository] = None,
        submissions: Optional[SubmissionRepository] = None,
    ):
        self.db = db
        self.manager = manager
        self.requests = requests or RequestRepository(db)
        self.submissions = submissions or SubmissionRepository(db)

    async def submit(
        self,
        id: Optional[Union[uuid.UUID, str]] = None,
        request_id: Optional[str] = None,
    ) -> SubmissionReceipt:
        if id is not None:
            record = await self.requests.get(id, for_update=True)
        elif request_id is not None:
            record = await self.requests.get_by_request_id(request_id, for_update=True)
        else:
            raise SubmitValidationError("Must provide either id or requestId")

        mode = self.manager.deal_creator.mode
        logger.info(
            "submission_started",
            request_id=record.request_id,
            status=record.status.value,
            mode=mode,
        )

        try:
            result = await self.manager.submit(record)
        except SubmitValidationError:
            await self.db.rollback()
            raise
        except SubmitError as e:
            await self.requests.mark_failed(record)
            await self.submissions.log(
                request_id=record.request_id,
                mode=mode,
                payload=submission_payload(record),
                succeeded=False,
                retryable=e.retryable,
                error=e.message,
            )
            await self.db.commit()
            logger.error(
                "submission_failed",
                request_id=record.request_id,
                error=e.message,
                code=e.code,
                retryable=e.retryable,
            )
            raise

        await self.requests.mark_submitted(record, result.deal_id)
        await self.submissions.log(
            request_id=record.request_id,
            mode=mode,
            payload=submission_payload(record),
            deal_id=result.deal_id,
            succeeded=True,
        )
        await self.db.commit()

        logger.info(
            "submission_succeeded",
            request_id=record.request_id,
            deal_id=result.deal_id,
            mode=mode,
        )
        return SubmissionReceipt(
            request_id=record.request_id,
            deal_id=result.deal_id,
            deal_url=deal_url(result.deal_id, mode),
            mode=mode,
        )
