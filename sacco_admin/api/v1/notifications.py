"""Admin notification inbox"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sacco_admin.api.dependencies import get_notifications_service, require_admin
from sacco_admin.api.v1.common import paginated, parse_id
from sacco_admin.api.v1.schemas import Envelope, NotificationSchema, PaginatedEnvelope
from sacco_admin.domain.models import Principal
from sacco_admin.infrastructure.database.session import get_db
from sacco_admin.services.notifications import NotificationsService

router = APIRouter()


@router.get("", response_model=PaginatedEnvelope[NotificationSchema])
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    unread: bool = Query(False, description="Only unread notifications"),
    principal: Principal = Depends(require_admin),
    service: NotificationsService = Depends(get_notifications_service),
):
    result = service.list_for_user(principal.user_id, page, limit, unread_only=unread)
    return paginated(result, NotificationSchema.model_validate)


@router.patch("/{notification_id}/read", response_model=Envelope[NotificationSchema])
def mark_notification_read(
    notification_id: str,
    principal: Principal = Depends(require_admin),
    service: NotificationsService = Depends(get_notifications_service),
    db: Session = Depends(get_db),
):
    notification = service.mark_read(parse_id(notification_id, "notification ID"), principal.user_id)
    db.commit()
    return Envelope(message="Marked as read", data=NotificationSchema.model_validate(notification))
