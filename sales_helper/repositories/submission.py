"""Submission log repository."""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sales_helper.models.submission import PipedriveSubmission

logger = structlog.get_logger()


class SubmissionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        request_id: str,
        mode: str,
        payload: dict,
        deal_id: Optional[int] = None,
        succeeded: bool = False,
        retryable: bool = False,
        error: Optional[str] = None,
    ) -> PipedriveSubmission:
        entry = PipedriveSubmission(
            request_id=request_id,
            mode=mode,
            payload=payload,
            deal_id=deal_id,
            succeeded=succeeded,
            retryable=retryable,
            error=error,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.debug(
            "submission_logged",
            request_id=request_id,
            mode=mode,
            succeeded=succeeded,
            deal_id=deal_id,
        )
        return entry

    async def for_request(self, request_id: str) -> list[PipedriveSubmission]:
        stmt = (
            select(PipedriveSubmission)
            .where(PipedriveSubmission.request_id == request_id)
            .order_by(PipedriveSubmission.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
