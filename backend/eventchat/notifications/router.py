"""Internal notification hooks for the REST API.

The catalog/registration API runs elsewhere; when it records something a
connected user should hear about right away, it calls these endpoints.
Delivery is best effort: offline users simply miss the notification.

Endpoints:
    POST /internal/users/{user_id}/notifications   - Unicast a notification
    POST /internal/events/{event_id}/registrations - Registration confirmed
    POST /internal/reports                         - New moderation report

All endpoints require the ``X-Internal-Key`` header to match
``secrets.internal.api_key``. Without a configured key they answer 503.
"""
import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from eventchat.chat.errors import DependencyError
from eventchat.chat.hub import ChatHub, get_hub
from eventchat.config import AppSettings, get_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["notifications"])


def require_internal_key(
    x_internal_key: Optional[str] = Header(None),
    config: AppSettings = Depends(get_config),
) -> None:
    expected = config.secrets.internal.api_key
    if not expected:
        raise HTTPException(status_code=503, detail="Internal API is not configured")
    if not x_internal_key or not hmac.compare_digest(x_internal_key, expected):
        raise HTTPException(status_code=403, detail="Invalid internal key")


class RegistrationNotice(BaseModel):
    """Request model for a confirmed event registration."""
    userId: str = Field(..., min_length=1)


class ReportNotice(BaseModel):
    """Request model for a newly filed moderation report."""
    reportId: str = Field(..., min_length=1)
    eventId: str = Field(..., min_length=1)
    reporterId: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)


class DeliveryResponse(BaseModel):
    delivered: bool


class ReportResponse(BaseModel):
    notified: int


@router.post(
    "/users/{user_id}/notifications",
    response_model=DeliveryResponse,
    dependencies=[Depends(require_internal_key)],
)
async def notify_user(
    user_id: str,
    notification: Dict[str, Any] = Body(...),
    hub: ChatHub = Depends(get_hub),
) -> DeliveryResponse:
    """Send ``notification`` to the user's live connection, if any."""
    delivered = await hub.notifier.notify_user(user_id, notification)
    return DeliveryResponse(delivered=delivered)


@router.post(
    "/events/{event_id}/registrations",
    dependencies=[Depends(require_internal_key)],
)
async def notify_registration(
    event_id: str,
    request: RegistrationNotice,
    hub: ChatHub = Depends(get_hub),
) -> Dict[str, Any]:
    """Notify the event creator and the event room of a new registration."""
    try:
        event = await hub.call(hub.memberships.get_event, event_id)
        user = await hub.call(hub.users.get_user, request.userId)
    except DependencyError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    notification = await hub.notifier.notify_event_registration(event, user)
    logger.info(f"Registration of {user.id} for event {event_id} announced")
    return notification


@router.post(
    "/reports",
    response_model=ReportResponse,
    dependencies=[Depends(require_internal_key)],
)
async def notify_report(
    request: ReportNotice,
    hub: ChatHub = Depends(get_hub),
) -> ReportResponse:
    """Notify every online administrator of a new report."""
    try:
        event = await hub.call(hub.memberships.get_event, request.eventId)
        reporter = await hub.call(hub.users.get_user, request.reporterId)
        admin_ids = await hub.call(hub.users.list_admin_ids)
    except DependencyError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    if reporter is None:
        raise HTTPException(status_code=404, detail="User not found")

    notified = await hub.notifier.notify_admins_of_report(
        request.reportId, request.reason, event, reporter, admin_ids
    )
    return ReportResponse(notified=notified)
