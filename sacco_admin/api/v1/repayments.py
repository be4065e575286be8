"""POST /credit/requests/{id}/repayments - member repays an approved credit request"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sacco_admin.api.dependencies import get_credit_service, get_current_principal, get_request_id
from sacco_admin.api.v1.common import parse_id
from sacco_admin.api.v1.schemas import Envelope, RepaymentRequest, RepaymentSchema
from sacco_admin.domain.models import Principal
from sacco_admin.infrastructure.database.session import get_db
from sacco_admin.infrastructure.observability.logging import log_repayment
from sacco_admin.services.credit import CreditService

router = APIRouter()


@router.post("/requests/{request_id}/repayments", response_model=Envelope[RepaymentSchema], status_code=201)
def create_repayment(
    request_id: str,
    body: RepaymentRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: CreditService = Depends(get_credit_service),
    db: Session = Depends(get_db),
):
    """
    Record a repayment for the caller's own approved credit request.

    Requests owned by someone else answer 404, exactly like missing ones.
    """
    repayment, attempts = service.repay(parse_id(request_id, "credit request ID"), principal.user_id, body.amount)
    db.commit()

    log_repayment(
        get_request_id(request),
        request_id,
        str(principal.user_id),
        repayment.amount,
        repayment.reference_number,
        attempts,
    )
    return Envelope(message="Repayment recorded", data=RepaymentSchema.model_validate(repayment))
