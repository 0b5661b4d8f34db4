"""Request lifecycle manager: submittability and status transitions.

The manager decides; it never persists. Callers translate its results
into repository writes (see ``sales_helper.lifecycle.submission``).

Transitions::

    draft     --submit ok-->    submitted
    draft     --submit fails--> failed
    failed    --submit ok-->    submitted
    failed    --submit fails--> failed
    submitted                   (terminal)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import structlog

from sales_helper.config import settings
from sales_helper.errors import (
    AppError,
    CRMTimeoutError,
    InvalidTransition,
    NetworkError,
    RemoteRejection,
    RequestLocked,
    SubmitValidationError,
)
from sales_helper.schemas.request import Contact, LineItem, RequestRecord, RequestStatus

logger = structlog.get_logger()

MISSING_CONTACT = "contact"
MISSING_MINE_INFO = "mine information"
MISSING_LINE_ITEMS = "line items"
MISSING_VALID_PRODUCTS = "valid product information"


class DealCreator(Protocol):
    """CRM collaborator that turns a request into a deal."""

    mode: str

    async def create_deal(
        self,
        contact: Contact,
        line_items: Sequence[LineItem],
        *,
        reference: str,
    ) -> int:
        ...


@dataclass(frozen=True)
class SubmissionCheck:
    """Result of :meth:`RequestLifecycleManager.validate_for_submission`."""

    submittable: bool
    missing: list[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "submittable": self.submittable,
            "missing": list(self.missing),
            "message": self.message,
        }


@dataclass(frozen=True)
class SubmitResult:
    deal_id: int


def format_missing_message(missing: Sequence[str]) -> str:
    """Build the "Add … to submit" hint for a list of missing parts."""
    if not missing:
        return ""
    if len(missing) == 1:
        return f"Add {missing[0]} to submit"
    if len(missing) == 2:
        return f"Add {missing[0]} and {missing[1]} to submit"
    return f"Add {', '.join(missing[:-1])}, and {missing[-1]} to submit"


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _line_item_valid(item: LineItem) -> bool:
    quantity = getattr(item, "quantity", None)
    return (
        _present(getattr(item, "product_id", None))
        and _present(getattr(item, "name", None))
        and isinstance(quantity, int)
        and quantity >= 1
    )


def find_missing(request: RequestRecord) -> list[str]:
    """List what a request lacks for submission, in reporting order.

    Reads fields defensively so partially built values (for example drafts
    assembled with ``model_construct``) are judged instead of crashing.
    """
    missing: list[str] = []
    contact = request.contact

    if contact is None:
        missing.append(MISSING_CONTACT)
    elif not (
        _present(getattr(contact, "mine_group", None))
        and _present(getattr(contact, "mine_name", None))
    ):
        missing.append(MISSING_MINE_INFO)

    line_items = request.line_items or []
    if not line_items:
        missing.append(MISSING_LINE_ITEMS)
    elif not all(_line_item_valid(item) for item in line_items):
        missing.append(MISSING_VALID_PRODUCTS)

    return missing


def next_status(current: RequestStatus, succeeded: bool) -> RequestStatus:
    """Apply a submit outcome to the current status."""
    if current == RequestStatus.SUBMITTED:
        raise InvalidTransition("Submitted requests cannot change status")
    return RequestStatus.SUBMITTED if succeeded else RequestStatus.FAILED


def ensure_editable(request: RequestRecord) -> None:
    """Contact, line items, comment and salesperson are frozen once submitted."""
    if request.status == RequestStatus.SUBMITTED:
        raise RequestLocked(
            f"Cannot edit submitted request {request.request_id}",
            data={"request_id": request.request_id, "status": request.status.value},
        )


def ensure_deletable(request: RequestRecord) -> None:
    if request.status != RequestStatus.DRAFT:
        raise RequestLocked(
            f"Cannot delete {request.status.value} request {request.request_id}",
            data={"request_id": request.request_id, "status": request.status.value},
        )


class RequestLifecycleManager:
    """Decides whether a request may be submitted and submits it to the CRM."""

    def __init__(self, deal_creator: DealCreator, timeout: Optional[float] = None):
        self.deal_creator = deal_creator
        self.timeout = timeout if timeout is not None else settings.pipedrive_timeout_seconds

    def validate_for_submission(self, request: RequestRecord) -> SubmissionCheck:
        """Check a request for submission. Pure: no I/O, no mutation."""
        missing = find_missing(request)
        is_draft = request.status == RequestStatus.DRAFT

        if missing:
            message = format_missing_message(missing)
        elif not is_draft:
            message = f"Cannot submit {request.status.value} request"
        else:
            message = ""

        return SubmissionCheck(
            submittable=not missing and is_draft,
            missing=missing,
            message=message,
        )

    def can_attempt(self, request: RequestRecord) -> bool:
        """Submittable drafts, plus failed requests being retried."""
        if request.status == RequestStatus.SUBMITTED:
            return False
        return not find_missing(request)

    async def submit(
        self,
        request: RequestRecord,
        timeout: Optional[float] = None,
    ) -> SubmitResult:
        """Create the CRM deal for a request.

        Raises:
            SubmitValidationError: request is not submittable; CRM untouched.
            NetworkError, CRMTimeoutError: transient, ``retryable`` is True.
            RemoteRejection: the CRM refused the deal, or failed in an
                unrecognised way.
        """
        if not self.can_attempt(request):
            check = self.validate_for_submission(request)
            logger.info(
                "submission_rejected",
                request_id=request.request_id,
                status=request.status.value,
                missing=check.missing,
            )
            raise SubmitValidationError(
                check.message,
                data={"request_id": request.request_id, "missing": check.missing},
            )

        limit = timeout if timeout is not None else self.timeout
        try:
            deal_id = await asyncio.wait_for(
                self.deal_creator.create_deal(
                    request.contact,
                    request.line_items,
                    reference=request.request_id,
                ),
                timeout=limit,
            )
        except AppError:
            raise
        except (asyncio.TimeoutError, TimeoutError) as e:
            logger.warning(
                "submission_timed_out",
                request_id=request.request_id,
                timeout_seconds=limit,
            )
            raise CRMTimeoutError(
                f"CRM did not respond within {limit:g}s",
                data={"request_id": request.request_id},
            ) from e
        except (ConnectionError, OSError) as e:
            logger.warning(
                "submission_network_error",
                request_id=request.request_id,
                error=str(e),
            )
            raise NetworkError(
                f"Failed to reach CRM: {e}",
                data={"request_id": request.request_id},
            ) from e
        except Exception as e:
            logger.error(
                "submission_crm_error",
                request_id=request.request_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RemoteRejection(
                f"CRM call failed: {e}",
                data={"request_id": request.request_id},
            ) from e

        logger.info(
            "deal_created",
            request_id=request.request_id,
            deal_id=deal_id,
            mode=self.deal_creator.mode,
        )
        return SubmitResult(deal_id=deal_id)
