"""Unit tests for the credit request state machine and repayments"""

import uuid
import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError
from sacco_admin.domain.exceptions import (
    InvalidAmountError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    ReferenceAllocationError,
)
from sacco_admin.infrastructure.database.models import NotificationOutbox, Repayment
from sacco_admin.infrastructure.database.repositories import CreditRepository, NotificationRepository
from sacco_admin.services.credit import CreditService
from sacco_admin.services.notifications import NotificationOutboxWriter


class BrokenOutboxRepository(NotificationRepository):
    def add_outbox(self, intent):
        raise SQLAlchemyError("outbox table unavailable")


class BlindReferenceRepository(CreditRepository):
    """Never sees existing references, so only the unique constraint can catch a clash"""

    def find_repayment_by_reference(self, reference_number):
        return None


class RacedRepository(CreditRepository):
    """Another admin always wins the conditional update"""

    def transition_from_pending(self, request_id, values):
        return False


def references(*values):
    return iter(values).__next__


@pytest.fixture
def service(db):
    return CreditService(CreditRepository(db), NotificationOutboxWriter(NotificationRepository(db)))


@pytest.fixture
def approved_request(make_credit_request, member):
    return make_credit_request(member, amount="1000.00", interest_rate="10.00", status="approved")


def outbox_titles(db):
    return [row.title for row in db.query(NotificationOutbox).order_by(NotificationOutbox.created_at).all()]


# Listing


def test_list_requests_filters_sorts_and_paginates(service, make_credit_request, member):
    make_credit_request(member, amount="100.00", created_at=datetime(2024, 1, 1))
    make_credit_request(member, amount="300.00", created_at=datetime(2024, 1, 3))
    make_credit_request(member, amount="200.00", created_at=datetime(2024, 1, 2))
    make_credit_request(member, amount="999.00", status="rejected", created_at=datetime(2024, 1, 4))

    page = service.list_requests(page=1, limit=2, status="pending")

    assert page.total == 3
    assert page.total_pages == 2
    assert [r.amount for r in page.items] == [Decimal("300.00"), Decimal("200.00")]

    by_amount = service.list_requests(page=1, limit=10, sort_by="amount", order="asc")
    assert [r.amount for r in by_amount.items] == [
        Decimal("100.00"),
        Decimal("200.00"),
        Decimal("300.00"),
        Decimal("999.00"),
    ]


def test_request_details_include_balance(service, approved_request, make_repayment):
    make_repayment(approved_request, "600.00", "CR1")

    request, balance = service.get_request_details(approved_request.id)

    assert request.user.first_name == "Member"
    assert len(request.repayments) == 1
    assert balance.total_owed == Decimal("1100")
    assert balance.total_repaid == Decimal("600")
    assert balance.remaining == Decimal("500")


def test_request_details_not_found(service):
    with pytest.raises(NotFoundError, match="Credit request not found"):
        service.get_request_details(uuid.uuid4())


# Transitions


def test_approve_pending_request(db, service, make_credit_request, member, admin):
    request = make_credit_request(member)

    updated = service.approve(request.id, admin.id)
    db.commit()

    assert updated.status == "approved"
    assert updated.approved_by == admin.id
    assert updated.approved_at is not None
    assert updated.rejection_reason is None
    assert outbox_titles(db) == ["Credit request approved"]


def test_approve_twice_fails(db, service, make_credit_request, member, admin):
    request = make_credit_request(member)
    service.approve(request.id, admin.id)
    db.commit()

    with pytest.raises(InvalidStateError, match="Only pending requests can be approved"):
        service.approve(request.id, admin.id)


def test_reject_after_approve_fails(db, service, make_credit_request, member, admin):
    request = make_credit_request(member)
    service.approve(request.id, admin.id)
    db.commit()

    with pytest.raises(InvalidStateError, match="Only pending requests can be rejected"):
        service.reject(request.id, admin.id, "Changed my mind")

    db.refresh(request)
    assert request.status == "approved"
    assert request.rejection_reason is None


def test_reject_pending_request(db, service, make_credit_request, member, admin):
    request = make_credit_request(member)

    updated = service.reject(request.id, admin.id, "Insufficient savings history")
    db.commit()

    assert updated.status == "rejected"
    assert updated.rejection_reason == "Insufficient savings history"
    assert updated.approved_by == admin.id
    assert updated.approved_at is None
    notification = db.query(NotificationOutbox).one()
    assert notification.title == "Credit request rejected"
    assert notification.message.endswith("Reason: Insufficient savings history")
    assert notification.user_id == member.id


@pytest.mark.parametrize("reason", ["", "   "])
def test_reject_requires_reason(db, service, make_credit_request, member, admin, reason):
    request = make_credit_request(member)

    with pytest.raises(InvalidInputError):
        service.reject(request.id, admin.id, reason)

    db.refresh(request)
    assert request.status == "pending"


def test_transition_unknown_request(service, admin):
    with pytest.raises(NotFoundError):
        service.approve(uuid.uuid4(), admin.id)


def test_transition_lost_race_reports_invalid_state(db, make_credit_request, member, admin):
    request = make_credit_request(member)
    service = CreditService(RacedRepository(db), NotificationOutboxWriter(NotificationRepository(db)))

    with pytest.raises(InvalidStateError):
        service.approve(request.id, admin.id)
    assert outbox_titles(db) == []


def test_outbox_failure_does_not_block_transition(db, make_credit_request, member, admin):
    request = make_credit_request(member)
    service = CreditService(CreditRepository(db), NotificationOutboxWriter(BrokenOutboxRepository(db)))

    updated = service.approve(request.id, admin.id)
    db.commit()

    assert updated.status == "approved"
    assert db.query(NotificationOutbox).count() == 0


# Repayments


def test_repayments_until_balance_cleared(db, service, approved_request, member):
    first, _ = service.repay(approved_request.id, member.id, Decimal("600"))
    db.commit()
    second, _ = service.repay(approved_request.id, member.id, Decimal("500"))
    db.commit()

    assert first.reference_number != second.reference_number
    with pytest.raises(InvalidAmountError, match="Remaining: 0.00"):
        service.repay(approved_request.id, member.id, Decimal("1"))
    assert db.query(Repayment).count() == 2


def test_repay_exact_remaining_is_allowed(db, service, approved_request, member):
    repayment, attempts = service.repay(approved_request.id, member.id, Decimal("1100"))
    db.commit()

    assert repayment.amount == Decimal("1100")
    assert attempts == 1


@pytest.mark.parametrize("status", ["pending", "rejected", "disbursed", "repaid"])
def test_repay_requires_approved(service, make_credit_request, member, status):
    request = make_credit_request(member, status=status)

    with pytest.raises(InvalidStateError):
        service.repay(request.id, member.id, Decimal("10"))


def test_repay_non_positive_amount_checked_before_state(service, make_credit_request, member):
    request = make_credit_request(member, status="pending")

    with pytest.raises(InvalidAmountError, match="greater than 0"):
        service.repay(request.id, member.id, Decimal("0"))


def test_repay_someone_elses_request_looks_missing(service, approved_request, make_user):
    stranger = make_user("Stranger")

    with pytest.raises(NotFoundError, match="Credit request not found"):
        service.repay(approved_request.id, stranger.id, Decimal("10"))


def test_repay_missing_request(service, member):
    with pytest.raises(NotFoundError):
        service.repay(uuid.uuid4(), member.id, Decimal("10"))


def test_reference_collision_is_retried(db, approved_request, member, make_repayment):
    make_repayment(approved_request, "10.00", "CR1")
    service = CreditService(
        CreditRepository(db),
        NotificationOutboxWriter(NotificationRepository(db)),
        reference_factory=references("CR1", "CR1", "CR2"),
    )

    repayment, attempts = service.repay(approved_request.id, member.id, Decimal("5"))
    db.commit()

    assert repayment.reference_number == "CR2"
    assert attempts == 3


def test_unique_constraint_collision_is_retried(db, approved_request, member, make_repayment):
    make_repayment(approved_request, "10.00", "CR1")
    service = CreditService(
        BlindReferenceRepository(db),
        NotificationOutboxWriter(NotificationRepository(db)),
        reference_factory=references("CR1", "CR2"),
    )

    repayment, attempts = service.repay(approved_request.id, member.id, Decimal("5"))
    db.commit()

    assert repayment.reference_number == "CR2"
    assert attempts == 2
    assert sorted(r.reference_number for r in db.query(Repayment).all()) == ["CR1", "CR2"]


def test_reference_allocation_is_bounded(db, approved_request, member, make_repayment):
    make_repayment(approved_request, "10.00", "CR1")
    service = CreditService(
        CreditRepository(db),
        NotificationOutboxWriter(NotificationRepository(db)),
        reference_factory=lambda: "CR1",
        max_reference_attempts=3,
    )

    with pytest.raises(ReferenceAllocationError, match="after 3 attempts"):
        service.repay(approved_request.id, member.id, Decimal("5"))
    assert db.query(Repayment).count() == 1


def test_references_are_unique_across_repayments(db, service, approved_request, member):
    for _ in range(10):
        service.repay(approved_request.id, member.id, Decimal("10"))
        db.commit()

    refs = [r.reference_number for r in db.query(Repayment).all()]
    assert len(refs) == 10
    assert len(set(refs)) == 10


@pytest.mark.parametrize("amount", ["0.001", "0.005"])
def test_repay_sub_cent_amount_stores_nothing(db, service, approved_request, member, amount):
    with pytest.raises(InvalidAmountError, match="at most 2 decimal places"):
        service.repay(approved_request.id, member.id, Decimal(amount))

    assert db.query(Repayment).count() == 0
