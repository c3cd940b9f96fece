"""Outbound delivery: unicast to an identity and broadcast to a room.

Delivery is send-and-forget. Frames for identities that are offline, or
for connections whose transport has closed, are dropped; nothing is queued
and nothing is retried. A failed write to one recipient never stops
delivery to the others.

Performance Notes:
    - Room broadcasts use asyncio.gather() for concurrent delivery
    - A recipient whose write fails is marked closed and skipped afterwards
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from eventchat.store.schemas import EventInfo, Identity

from .connection import Connection
from .protocol import OutboundType
from .registry import ConnectionRegistry
from .rooms import RoomRouter

logger = logging.getLogger(__name__)


class Notifier:
    """Delivers frames through the registry and room router."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        rooms: RoomRouter,
        send_timeout: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.rooms = rooms
        self.send_timeout = send_timeout

    async def send(self, connection: Connection, message: Dict[str, Any]) -> bool:
        return await connection.send(message, timeout=self.send_timeout)

    async def unicast(self, identity_id: str, message: Dict[str, Any]) -> bool:
        """Deliver to the identity's live connection, or drop silently."""
        connection = self.registry.get(identity_id)
        if connection is None or not connection.is_open:
            logger.debug(f"[Notifier] {identity_id} offline, dropping {message.get('type')}")
            return False
        return await self.send(connection, message)

    async def broadcast_room(
        self,
        room_id: str,
        message: Dict[str, Any],
        exclude_identity_id: Optional[str] = None,
    ) -> int:
        """Deliver to every open member of ``room_id``.

        Args:
            room_id: Room to broadcast to.
            message: Outbound frame.
            exclude_identity_id: Identity to skip (usually the originator).

        Returns:
            Number of recipients the frame was handed to.
        """
        recipients = [
            conn for conn in self.rooms.members_of(room_id)
            if conn.is_open and conn.user_id != exclude_identity_id
        ]
        if not recipients:
            return 0

        results = await asyncio.gather(
            *[self.send(conn, message) for conn in recipients],
            return_exceptions=True,
        )
        delivered = sum(1 for result in results if result is True)
        logger.debug(
            f"[Notifier] {message.get('type')} to room {room_id}: "
            f"{delivered}/{len(recipients)} delivered"
        )
        return delivered

    # =========================================================================
    # Out-of-band notifications
    # =========================================================================

    async def notify_user(self, identity_id: str, notification: Dict[str, Any]) -> bool:
        return await self.unicast(identity_id, _notification_frame(notification))

    async def notify_event_registration(self, event: EventInfo, user: Identity) -> Dict[str, Any]:
        """Tell the event creator and the room that ``user`` registered."""
        notification = {
            "type": "event_registration",
            "eventId": event.id,
            "eventTitle": event.title,
            "userId": user.id,
            "userName": user.name,
            "timestamp": _now_iso(),
        }
        await self.notify_user(event.creatorId, notification)
        await self.broadcast_room(event.id, _notification_frame(notification))
        return notification

    async def notify_admins_of_report(
        self,
        report_id: str,
        reason: str,
        event: EventInfo,
        reporter: Identity,
        admin_ids: Iterable[str],
    ) -> int:
        """Unicast a moderation report to every administrator.

        Returns:
            Number of administrators that were online and received it.
        """
        notification = {
            "type": "new_report",
            "reportId": report_id,
            "eventId": event.id,
            "eventTitle": event.title,
            "reporterName": reporter.name,
            "reason": reason,
            "timestamp": _now_iso(),
        }
        notified = 0
        for admin_id in admin_ids:
            if await self.notify_user(admin_id, notification):
                notified += 1
        logger.info(f"[Notifier] Report {report_id} delivered to {notified} admin(s)")
        return notified


def _notification_frame(notification: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": OutboundType.NOTIFICATION.value, "payload": dict(notification)}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
