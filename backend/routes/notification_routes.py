from fastapi import APIRouter, Depends, HTTPException, status

from backend.auth.context import CallerContext
from backend.auth.dependencies import get_current_caller
from backend.models.user import Role
from backend.services.notification_service import NotificationChannel, get_notification_channel

router = APIRouter(tags=['notifications'])


@router.get('/recent')
def list_recent_notifications(
    caller: CallerContext = Depends(get_current_caller),
    channel: NotificationChannel = Depends(get_notification_channel),
):
    if caller.role != Role.SPECIALIST:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only specialists receive appointment notifications.',
        )

    return channel.recent(caller.user_id)
