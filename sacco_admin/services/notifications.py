"""Notification outbox, delivery dispatcher and admin inbox"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from sacco_admin.config import settings
from sacco_admin.domain.exceptions import NotFoundError
from sacco_admin.domain.models import NotificationIntent, Page
from sacco_admin.domain.pagination import build_page, offset_for
from sacco_admin.infrastructure.clients.notification_push import NotificationPushClient
from sacco_admin.infrastructure.database.models import Notification, NotificationOutbox
from sacco_admin.infrastructure.database.repositories import NotificationRepository
from sacco_admin.infrastructure.database.session import session_scope
from sacco_admin.infrastructure.observability.logging import log_notification_delivery
from sacco_admin.infrastructure.observability.metrics import (
    notification_delivered_counter,
    notification_failure_counter,
)
from sacco_admin.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationOutboxWriter:
    """
    Records notification intents in the caller's transaction.

    Each write runs in its own savepoint; a failure is logged and discarded so
    the business change that triggered it still commits.
    """

    def __init__(self, repo: NotificationRepository):
        self.repo = repo

    def enqueue(self, intent: NotificationIntent) -> Optional[NotificationOutbox]:
        try:
            with self.repo.db.begin_nested():
                return self.repo.add_outbox(intent)
        except SQLAlchemyError as e:
            notification_failure_counter.labels(stage="enqueue").inc()
            logger.warning(f"Could not enqueue notification: {e}", extra={"user_id": str(intent.user_id)})
            return None


class NotificationDispatcher:
    """
    Drains the outbox into in-app notifications (and the push gateway, if configured).

    Each row is claimed with a conditional update before delivery, so
    overlapping passes never deliver the same row twice. Database work runs
    in the threadpool, one short session per step, keeping the event loop free
    while the push gateway is awaited.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        push_client: Optional[NotificationPushClient] = None,
        max_attempts: Optional[int] = None,
        batch_size: int = 100,
        claim_timeout_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.push_client = push_client or NotificationPushClient()
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.batch_size = batch_size
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds or settings.notification_claim_timeout_seconds)

    async def dispatch_pending(self) -> int:
        """
        Deliver every dispatchable outbox row once.

        Returns:
            Number of rows delivered by this pass. Failures are recorded on the
            row and logged, never raised.
        """
        try:
            outbox_ids = await run_in_threadpool(self._in_session, self._list_ids)
        except SQLAlchemyError as e:
            notification_failure_counter.labels(stage="claim").inc()
            logger.error(f"Could not read the notification outbox: {e}")
            return 0

        delivered = 0
        for outbox_id in outbox_ids:
            if await self._deliver(outbox_id):
                delivered += 1
        return delivered

    def _in_session(self, work: Callable, *args):
        with session_scope(self.session_factory) as db:
            return work(NotificationRepository(db), *args)

    def _list_ids(self, repo: NotificationRepository) -> List[uuid.UUID]:
        return repo.list_dispatchable_outbox_ids(self.batch_size, utcnow() - self.claim_timeout)

    def _claim(self, repo: NotificationRepository, outbox_id: uuid.UUID) -> Optional[NotificationIntent]:
        now = utcnow()
        entry = repo.claim_outbox(outbox_id, now, now - self.claim_timeout)
        if entry is None:
            return None
        # Detached copy; the session closes before the push is awaited
        return NotificationIntent(user_id=entry.user_id, title=entry.title, message=entry.message, type=entry.type)

    async def _deliver(self, outbox_id: uuid.UUID) -> bool:
        try:
            intent = await run_in_threadpool(self._in_session, self._claim, outbox_id)
        except SQLAlchemyError as e:
            notification_failure_counter.labels(stage="claim").inc()
            logger.warning(f"Could not claim notification: {e}", extra={"outbox_id": str(outbox_id)})
            return False
        if intent is None:
            return False

        try:
            if self.push_client.enabled:
                await self.push_client.push(
                    {
                        "userId": str(intent.user_id),
                        "type": intent.type,
                        "title": intent.title,
                        "message": intent.message,
                    }
                )
            notification = await run_in_threadpool(
                self._in_session, NotificationRepository.complete_outbox, outbox_id, intent
            )
        except Exception as e:
            await self._record_failure(outbox_id, intent, str(e))
            return False
        if notification is None:
            logger.warning("Notification claim lost before completion", extra={"outbox_id": str(outbox_id)})
            return False

        notification_delivered_counter.inc()
        log_notification_delivery(str(outbox_id), str(intent.user_id), delivered=True)
        return True

    async def _record_failure(self, outbox_id: uuid.UUID, intent: NotificationIntent, error: str) -> None:
        notification_failure_counter.labels(stage="deliver").inc()
        log_notification_delivery(str(outbox_id), str(intent.user_id), delivered=False, error=error)
        try:
            await run_in_threadpool(
                self._in_session, NotificationRepository.fail_outbox, outbox_id, error, self.max_attempts
            )
        except SQLAlchemyError as e:
            # The row stays "sending" and is reclaimed once the claim goes stale
            notification_failure_counter.labels(stage="record").inc()
            logger.error(f"Could not record notification failure: {e}", extra={"outbox_id": str(outbox_id)})


class NotificationsService:
    """Admin inbox over delivered notifications"""

    def __init__(self, repo: NotificationRepository):
        self.repo = repo

    def list_for_user(self, user_id: uuid.UUID, page: int, limit: int, unread_only: bool = False) -> Page[Notification]:
        items = self.repo.list_for_user(user_id, unread_only, offset_for(page, limit), limit)
        total = self.repo.count_for_user(user_id, unread_only)
        return build_page(items, total, page, limit)

    def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        notification = self.repo.find_for_user(notification_id, user_id)
        if not notification:
            raise NotFoundError("Notification not found")
        notification.read = True
        self.repo.db.flush()
        return notification
