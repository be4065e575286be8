"""Credit request lifecycle: admin queries, approve/reject transitions and repayments"""

import uuid
from decimal import Decimal
from typing import Callable, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sacco_admin.config import settings
from sacco_admin.domain.credit import (
    ensure_pending,
    generate_reference_number,
    summarize_balance,
    validate_repayment,
)
from sacco_admin.domain.exceptions import (
    InvalidAmountError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    ReferenceAllocationError,
)
from sacco_admin.domain.models import BalanceSummary, CreditStatus, NotificationIntent, Page
from sacco_admin.domain.pagination import build_page, offset_for
from sacco_admin.infrastructure.database.models import CreditRequest, Repayment
from sacco_admin.infrastructure.database.repositories import CreditRepository
from sacco_admin.infrastructure.observability.metrics import (
    record_repayment_rejected,
    reference_collision_counter,
    repayment_counter,
)
from sacco_admin.services.notifications import NotificationOutboxWriter
from sacco_admin.utils.date_utils import utcnow

NOT_FOUND_MESSAGE = "Credit request not found"


class CreditService:
    """
    Owns the credit request state machine.

    pending → approved | rejected happens exactly once; repayments accrue only
    while approved. disbursed and repaid are set by other processes.
    """

    def __init__(
        self,
        repo: CreditRepository,
        outbox: NotificationOutboxWriter,
        reference_factory: Callable[[], str] = generate_reference_number,
        max_reference_attempts: Optional[int] = None,
    ):
        self.repo = repo
        self.outbox = outbox
        self.reference_factory = reference_factory
        self.max_reference_attempts = max_reference_attempts or settings.reference_max_attempts

    # Admin queries

    def list_requests(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Page[CreditRequest]:
        items = self.repo.list_requests(status, offset_for(page, limit), limit, sort_by, order)
        total = self.repo.count_requests(status)
        return build_page(items, total, page, limit)

    def get_request_details(self, request_id: uuid.UUID) -> Tuple[CreditRequest, BalanceSummary]:
        request = self.repo.find_request_with_user_and_repayments(request_id)
        if not request:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        balance = summarize_balance(request.amount, request.interest_rate, (r.amount for r in request.repayments))
        return request, balance

    # Transitions

    def approve(self, request_id: uuid.UUID, admin_id: uuid.UUID) -> CreditRequest:
        request = self._get_pending(request_id, "approved")
        values = {
            "status": CreditStatus.APPROVED.value,
            "approved_by": admin_id,
            "approved_at": utcnow(),
            "rejection_reason": None,
        }
        if not self.repo.transition_from_pending(request_id, values):
            raise InvalidStateError("Only pending requests can be approved")

        self.outbox.enqueue(
            NotificationIntent(
                user_id=request.user_id,
                title="Credit request approved",
                message=f"Your credit request of {request.amount:,} has been approved.",
            )
        )
        return self.repo.find_request_by_id(request_id)

    def reject(self, request_id: uuid.UUID, admin_id: uuid.UUID, reason: str) -> CreditRequest:
        if not reason or not reason.strip():
            raise InvalidInputError("A rejection reason is required")

        request = self._get_pending(request_id, "rejected")
        values = {
            "status": CreditStatus.REJECTED.value,
            "approved_by": admin_id,
            "approved_at": None,
            "rejection_reason": reason,
        }
        if not self.repo.transition_from_pending(request_id, values):
            raise InvalidStateError("Only pending requests can be rejected")

        self.outbox.enqueue(
            NotificationIntent(
                user_id=request.user_id,
                title="Credit request rejected",
                message=f"Your credit request of {request.amount:,} has been rejected. Reason: {reason}",
            )
        )
        return self.repo.find_request_by_id(request_id)

    def _get_pending(self, request_id: uuid.UUID, action: str) -> CreditRequest:
        request = self.repo.find_request_by_id(request_id)
        if not request:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        ensure_pending(request.status, action)
        return request

    # Repayments

    def repay(self, request_id: uuid.UUID, user_id: uuid.UUID, amount: Decimal) -> Tuple[Repayment, int]:
        """
        Record a repayment against an approved request owned by user_id.

        Returns:
            (repayment, reference attempts used)

        Raises:
            NotFoundError: request missing or owned by someone else
            InvalidAmountError: amount <= 0, or above the remaining balance
            InvalidStateError: request not approved
            ReferenceAllocationError: no free reference after the retry bound
        """
        request = self.repo.find_request_for_repayment(request_id)
        if not request or request.user_id != user_id:
            record_repayment_rejected("not_found")
            raise NotFoundError(NOT_FOUND_MESSAGE)

        amount = Decimal(amount)
        repaid = self.repo.sum_repayments(request_id)
        balance = summarize_balance(request.amount, request.interest_rate, [repaid])
        try:
            validate_repayment(amount, request.status, balance.remaining)
        except InvalidAmountError:
            record_repayment_rejected("invalid_amount")
            raise
        except InvalidStateError:
            record_repayment_rejected("invalid_state")
            raise

        repayment, attempts = self._create_with_unique_reference(request_id, amount)
        repayment_counter.inc()
        return repayment, attempts

    def _create_with_unique_reference(self, request_id: uuid.UUID, amount: Decimal) -> Tuple[Repayment, int]:
        for attempt in range(1, self.max_reference_attempts + 1):
            reference = self.reference_factory()
            if self.repo.find_repayment_by_reference(reference):
                reference_collision_counter.inc()
                continue
            try:
                return self.repo.create_repayment(request_id, amount, reference), attempt
            except IntegrityError:
                # Lost a race for the same reference; the unique constraint caught it
                reference_collision_counter.inc()

        record_repayment_rejected("reference_exhausted")
        raise ReferenceAllocationError(
            f"Could not allocate a repayment reference after {self.max_reference_attempts} attempts"
        )
