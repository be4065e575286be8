"""Admin credit workflow: list, detail, approve, reject"""

from typing import Literal, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from sacco_admin.api.dependencies import (
    get_credit_service,
    get_notification_dispatcher,
    get_request_id,
    require_admin,
)
from sacco_admin.api.v1.common import paginated, parse_id
from sacco_admin.api.v1.schemas import (
    BalanceSchema,
    CreditOwner,
    CreditRequestDetails,
    CreditRequestSchema,
    Envelope,
    PaginatedEnvelope,
    RejectRequest,
    RepaymentSchema,
)
from sacco_admin.domain.exceptions import InvalidStateError, NotFoundError
from sacco_admin.domain.models import Principal
from sacco_admin.infrastructure.database.session import get_db
from sacco_admin.infrastructure.observability.logging import log_credit_transition
from sacco_admin.infrastructure.observability.metrics import record_transition
from sacco_admin.services.credit import CreditService
from sacco_admin.services.notifications import NotificationDispatcher

router = APIRouter()

CreditStatusFilter = Literal["pending", "approved", "rejected", "disbursed", "repaid"]
CreditSortField = Literal["createdAt", "amount", "interestRate", "durationMonths", "status"]


@router.get("/requests", response_model=PaginatedEnvelope[CreditRequestSchema])
def list_credit_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[CreditStatusFilter] = Query(None),
    sort_by: CreditSortField = Query("createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("desc"),
    _: Principal = Depends(require_admin),
    service: CreditService = Depends(get_credit_service),
):
    """List credit requests, filtered by status and sorted by a whitelisted field"""
    result = service.list_requests(page, limit, status, sort_by, order)
    return paginated(result, CreditRequestSchema.model_validate)


@router.get("/requests/{request_id}", response_model=Envelope[CreditRequestDetails])
def get_credit_request(
    request_id: str,
    _: Principal = Depends(require_admin),
    service: CreditService = Depends(get_credit_service),
):
    """
    Credit request with its owner, all repayments and the balance summary.

    Returns:
        404 when the request does not exist
    """
    request, balance = service.get_request_details(parse_id(request_id, "credit request ID"))
    base = CreditRequestSchema.model_validate(request).model_dump()
    details = CreditRequestDetails(
        **base,
        repayments=[RepaymentSchema.model_validate(r) for r in request.repayments],
        user=CreditOwner.model_validate(request.user),
        balance=BalanceSchema.model_validate(balance),
    )
    return Envelope(data=details)


def _transition(
    action: str,
    request_id: str,
    principal: Principal,
    request: Request,
    run,
):
    credit_request_id = parse_id(request_id, "credit request ID")
    try:
        updated = run(credit_request_id)
    except (InvalidStateError, NotFoundError) as e:
        outcome = "not_found" if isinstance(e, NotFoundError) else "invalid_state"
        record_transition(action, outcome)
        log_credit_transition(get_request_id(request), request_id, str(principal.user_id), action, outcome)
        raise

    record_transition(action, "success")
    log_credit_transition(get_request_id(request), request_id, str(principal.user_id), action, "success")
    return updated


@router.patch("/requests/{request_id}/approve", response_model=Envelope[CreditRequestSchema])
def approve_credit_request(
    request_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_admin),
    service: CreditService = Depends(get_credit_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    db: Session = Depends(get_db),
):
    """Approve a pending request; the owner is notified after commit"""
    updated = _transition(
        "approve", request_id, principal, request,
        lambda rid: service.approve(rid, principal.user_id),
    )
    db.commit()
    background_tasks.add_task(dispatcher.dispatch_pending)
    return Envelope(message="Approved", data=CreditRequestSchema.model_validate(updated))


@router.patch("/requests/{request_id}/reject", response_model=Envelope[CreditRequestSchema])
def reject_credit_request(
    request_id: str,
    body: RejectRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_admin),
    service: CreditService = Depends(get_credit_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    db: Session = Depends(get_db),
):
    """Reject a pending request with a non-empty reason"""
    updated = _transition(
        "reject", request_id, principal, request,
        lambda rid: service.reject(rid, principal.user_id, body.reason),
    )
    db.commit()
    background_tasks.add_task(dispatcher.dispatch_pending)
    return Envelope(message="Rejected", data=CreditRequestSchema.model_validate(updated))
