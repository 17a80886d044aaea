# happypulse/services/notifications.py
"""
Notification dispatcher.

Persists an in-app Notification row and fans out to the enabled delivery
providers. Providers here are simulated: in production they would call the
email gateway, the WhatsApp Business API and the Slack Web API.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from happypulse.core.config import settings
from happypulse.core.errors import DependencyUnavailable
from happypulse.models.user import Notification, User

logger = logging.getLogger("notifications")


class Provider:
    channel = "in_app"

    async def send(self, user: User, title: str, message: str, data: Optional[dict] = None) -> None:
        raise NotImplementedError


class EmailProvider(Provider):
    channel = "email"

    async def send(self, user, title, message, data=None):
        logger.info(f"[notify:email] → {user.email}: {title}")


class WhatsAppProvider(Provider):
    channel = "whatsapp"

    async def send(self, user, title, message, data=None):
        logger.info(f"[notify:whatsapp] → {user.employee_id}: {message}")


class SlackProvider(Provider):
    channel = "slack"

    async def send(self, user, title, message, data=None):
        logger.info(f"[notify:slack] → {user.email}: *{title}* {message}")


def default_providers() -> List[Provider]:
    providers: List[Provider] = []
    if settings.NOTIFY_EMAIL_ENABLED:
        providers.append(EmailProvider())
    if settings.NOTIFY_WHATSAPP_ENABLED:
        providers.append(WhatsAppProvider())
    if settings.NOTIFY_SLACK_ENABLED:
        providers.append(SlackProvider())
    return providers


class NotificationDispatcher:
    def __init__(
        self,
        providers: Optional[List[Provider]] = None,
        max_in_flight: int = settings.NOTIFICATION_QUEUE_DEPTH,
    ):
        self.providers = default_providers() if providers is None else providers
        self.max_in_flight = max_in_flight
        self._in_flight = 0
        self.sent: Dict[str, int] = {}

    async def dispatch(
        self,
        db: AsyncSession,
        user: User,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
        priority: str = "medium",
    ) -> Notification:
        """
        Persist and deliver one notification.
        Raises DependencyUnavailable when the outbound depth is exceeded or a provider fails;
        the post-commit queue retries the whole dispatch in that case.
        """
        if self._in_flight >= self.max_in_flight:
            logger.warning(f"[notify] outbound depth {self.max_in_flight} exceeded, failing fast")
            raise DependencyUnavailable("Notification queue is full")

        self._in_flight += 1
        try:
            channels = ["in_app"] if settings.NOTIFY_IN_APP_ENABLED else []
            for provider in self.providers:
                try:
                    await provider.send(user, title, message, data)
                except Exception as e:
                    raise DependencyUnavailable(f"{provider.channel} delivery failed: {e}") from e
                channels.append(provider.channel)
                self.sent[provider.channel] = self.sent.get(provider.channel, 0) + 1

            row = Notification(
                user_id=user.id,
                type=type,
                title=title,
                message=message,
                data=data or {},
                priority=priority,
                channels=channels,
            )
            db.add(row)
            await db.flush()
            logger.info(f"[notify] {type} → user {user.id} via {','.join(channels) or 'none'}")
            return row
        finally:
            self._in_flight -= 1
