"""In-app notification sink. Fire-and-forget: failures are logged, never raised."""

from typing import Any, Optional

from libs.common.logging import get_logger
from services.marketplace_service.models import Notification, NotificationType
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def notify(
    db: AsyncSession,
    *,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Queue a notification in the caller's transaction."""
    try:
        db.add(
            Notification(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                data={k: str(v) for k, v in (data or {}).items()},
            )
        )
    except Exception as e:
        logger.warning(
            f"Failed to queue notification for {user_id}: {e}",
            extra={"extra_fields": {"user_id": user_id, "type": type.value}},
        )
