"""Credit arithmetic and repayment rules - pure functions, no persistence"""

import random
import time
from decimal import Decimal
from typing import Callable, Iterable
from sacco_admin.domain.models import BalanceSummary, CreditStatus
from sacco_admin.domain.exceptions import InvalidAmountError, InvalidStateError

CENTS = Decimal("0.01")


def total_owed(principal: Decimal, interest_rate: Decimal) -> Decimal:
    """
    Principal plus flat interest over the whole term.

    Example:
        principal=1000, interest_rate=10 → 1100
    """
    return Decimal(principal) * (1 + Decimal(interest_rate) / 100)


def summarize_balance(
    principal: Decimal,
    interest_rate: Decimal,
    repayment_amounts: Iterable[Decimal],
) -> BalanceSummary:
    owed = total_owed(principal, interest_rate)
    repaid = sum((Decimal(a) for a in repayment_amounts), Decimal("0"))
    return BalanceSummary(total_owed=owed, total_repaid=repaid, remaining=owed - repaid)


def format_amount(amount: Decimal) -> str:
    """Two-decimal rendering used in error messages"""
    return str(Decimal(amount).quantize(CENTS))


def ensure_pending(status: str, action: str) -> None:
    if status != CreditStatus.PENDING.value:
        raise InvalidStateError(f"Only pending requests can be {action}")


def validate_repayment(amount: Decimal, status: str, remaining: Decimal) -> None:
    """
    Check a repayment against the request state and remaining balance.

    Order matters: a non-positive or sub-cent amount is rejected whatever
    the status, and paying exactly the remaining balance is allowed.

    Raises:
        InvalidAmountError: amount <= 0, finer than cents, or amount > remaining
        InvalidStateError: request is not approved
    """
    if amount <= 0:
        raise InvalidAmountError("Payment amount must be greater than 0")

    # Stored as Numeric(14, 2); anything finer would be rounded on insert
    if amount != amount.quantize(CENTS):
        raise InvalidAmountError("Payment amount must have at most 2 decimal places")

    if status != CreditStatus.APPROVED.value:
        raise InvalidStateError("Credit request must be approved before making repayments")

    if amount > remaining:
        raise InvalidAmountError(
            f"Payment amount exceeds remaining balance. Remaining: {format_amount(remaining)}"
        )


def generate_reference_number(
    clock: Callable[[], float] = time.time,
    rng: Callable[[int, int], int] = random.randint,
) -> str:
    """
    Synthesize a repayment reference: "CR" + epoch milliseconds + 0..999 suffix.

    Candidates can collide (same millisecond, same suffix), so callers must
    check for an existing reference and retry.
    """
    return f"CR{int(clock() * 1000)}{rng(0, 999)}"
