"""
Pass-through hooks from the intercept proxy to the notification collaborator.

The proxy only forwards these events; displaying notifications and replaying
failed requests belong to whoever implements the sink.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger("proxy.hooks")

BACKGROUND_SYNC_TAG = "background-sync"
NOTIFICATION_ICON = "/favicon.png"
VIBRATE_PATTERN = [100, 50, 100]


@dataclass
class Notification:
    """A push notification ready for display."""
    title: str
    body: str = ""
    icon: str = NOTIFICATION_ICON
    badge: str = NOTIFICATION_ICON
    vibrate: List[int] = field(default_factory=lambda: list(VIBRATE_PATTERN))
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_push(cls, data: Dict[str, Any]) -> "Notification":
        return cls(title=data.get("title", ""), body=data.get("body", ""), data=data)


class NotificationSink(Protocol):
    """External collaborator that shows notifications and opens windows."""

    async def show_notification(self, notification: Notification) -> None:
        ...

    async def open_window(self, url: str) -> None:
        ...


class LoggingNotificationSink:
    """Sink that only logs; the default when nothing else is wired in."""

    async def show_notification(self, notification: Notification) -> None:
        logger.info(f"Notification: {notification.title}")

    async def open_window(self, url: str) -> None:
        logger.info(f"Open window: {url}")


SyncHandler = Callable[[], Awaitable[None]]


async def default_background_sync() -> None:
    logger.info("Background sync triggered")


class ProxyHooks:
    """Side-channel events the proxy receives besides intercepted requests."""

    def __init__(
        self,
        sink: Optional[NotificationSink] = None,
        sync_handler: Optional[SyncHandler] = None,
    ):
        self._sink = sink or LoggingNotificationSink()
        self._sync_handler = sync_handler or default_background_sync

    async def sync(self, tag: str) -> bool:
        """Run the background-sync hook; other tags are ignored."""
        if tag != BACKGROUND_SYNC_TAG:
            return False
        await self._sync_handler()
        return True

    async def push(self, data: Optional[Dict[str, Any]]) -> Optional[Notification]:
        """Forward a push payload to the sink as a notification."""
        if not data:
            return None
        notification = Notification.from_push(data)
        await self._sink.show_notification(notification)
        return notification

    async def notification_click(self) -> None:
        await self._sink.open_window("/")

    def post_message(self, message: Optional[Dict[str, Any]]) -> None:
        """Handle a message posted by the application."""
        if message and message.get("type") == "PERFORMANCE_LOG":
            logger.info(f"Performance metrics: {message.get('metrics')}")
