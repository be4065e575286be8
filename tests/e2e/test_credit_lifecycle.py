"""End-to-end walk through the back-office: approval, repayment and notification delivery"""

from fastapi.testclient import TestClient
from sacco_admin.infrastructure.clients.notification_push import NotificationPushClient
from sacco_admin.infrastructure.database.models import Notification, NotificationOutbox
from sacco_admin.services.notifications import NotificationDispatcher

PASSWORD = "Secret@123"


async def test_member_repays_approved_credit(
    client: TestClient,
    db,
    session_factory,
    admin_headers,
    member,
    member_headers,
    make_credit_request,
):
    """Admin approves 1000 at 10%, member repays 600 + 500, the balance is cleared"""
    request = make_credit_request(member, amount="1000.00", interest_rate="10.00")

    approved = client.patch(f"/api/admin/credit/requests/{request.id}/approve", headers=admin_headers)
    assert approved.status_code == 200

    for amount in (600, 500):
        paid = client.post(
            f"/api/credit/requests/{request.id}/repayments",
            json={"amount": amount},
            headers=member_headers,
        )
        assert paid.status_code == 201

    overpaid = client.post(
        f"/api/credit/requests/{request.id}/repayments",
        json={"amount": 1},
        headers=member_headers,
    )
    assert overpaid.status_code == 400
    assert overpaid.json()["message"].endswith("Remaining: 0.00")

    details = client.get(f"/api/admin/credit/requests/{request.id}", headers=admin_headers).json()["data"]
    assert details["status"] == "approved"
    assert details["balance"] == {"totalOwed": 1100.0, "totalRepaid": 1100.0, "remaining": 0.0}
    assert len({r["referenceNumber"] for r in details["repayments"]}) == 2

    # Deliver what the approval queued
    db.commit()
    dispatcher = NotificationDispatcher(session_factory, push_client=NotificationPushClient(webhook_url=""))
    assert await dispatcher.dispatch_pending() == 1

    db.expire_all()
    notification = db.query(Notification).filter(Notification.user_id == member.id).one()
    assert notification.title == "Credit request approved"
    assert "1,000.00" in notification.message
    assert db.query(NotificationOutbox).one().status == "delivered"


async def test_rejected_request_cannot_be_repaid(
    client: TestClient,
    admin_headers,
    member,
    member_headers,
    make_credit_request,
):
    request = make_credit_request(member)

    rejected = client.patch(
        f"/api/admin/credit/requests/{request.id}/reject",
        json={"reason": "Guarantor missing"},
        headers=admin_headers,
    )
    assert rejected.status_code == 200

    approve = client.patch(f"/api/admin/credit/requests/{request.id}/approve", headers=admin_headers)
    assert approve.status_code == 400

    paid = client.post(
        f"/api/credit/requests/{request.id}/repayments",
        json={"amount": 10},
        headers=member_headers,
    )
    assert paid.status_code == 400
    assert paid.json()["message"] == "Credit request must be approved before making repayments"


async def test_admin_sees_password_change_in_inbox(client: TestClient, db, session_factory, admin_headers):
    changed = client.patch(
        "/api/admin/users/password",
        json={"currentPassword": PASSWORD, "newPassword": "An0ther-secret"},
        headers=admin_headers,
    )
    assert changed.status_code == 200

    db.commit()
    dispatcher = NotificationDispatcher(session_factory, push_client=NotificationPushClient(webhook_url=""))
    await dispatcher.dispatch_pending()
    db.expire_all()

    inbox = client.get("/api/admin/notifications", headers=admin_headers).json()
    assert [n["title"] for n in inbox["data"]] == ["Password changed"]
    assert inbox["data"][0]["read"] is False
