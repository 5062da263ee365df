from fastapi import APIRouter, Depends, HTTPException

from app.schemas.device import NotificationActionRequest, NotificationSettingsUpdate, PushRegisterRequest
from app.services.container import Container, get_container

router = APIRouter()


@router.post("/register")
def register_push_token(payload: PushRegisterRequest, c: Container = Depends(get_container)):
    try:
        c.notifications.register_push_token(payload.token)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}


@router.get("/stats")
def notification_stats(c: Container = Depends(get_container)):
    return {
        **c.notifications.get_notification_stats(),
        "scheduled_at": {k: v.isoformat() for k, v in c.notifications.scheduled_notifications().items()},
    }


@router.get("/history")
def notification_history(c: Container = Depends(get_container)):
    return list(c.notifications.history)


@router.post("/actions")
def notification_action(payload: NotificationActionRequest, c: Container = Depends(get_container)):
    c.notifications.handle_notification_action(payload.action, payload.data)
    return {"ok": True, "selected_venue_id": c.event_store.selected_venue_id}


@router.get("/settings")
def get_settings(c: Container = Depends(get_container)):
    return c.event_store.notification_settings.to_wire()


@router.patch("/settings")
def update_settings(payload: NotificationSettingsUpdate, c: Container = Depends(get_container)):
    changes = payload.model_dump(exclude_none=True)
    return c.event_store.update_notification_settings(**changes).to_wire()
