from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.schemas.device import BackgroundTaskBody, DeviceStateUpdate, LocationObject
from app.schemas.enums import PermissionStatus
from app.schemas.venue import UserLocation
from app.services.container import Container, get_container
from app.services.device import location_from_object

router = APIRouter()


# ------------------------------------------------------------------
# Device facts
# ------------------------------------------------------------------

@router.get("/state")
async def get_device_state(c: Container = Depends(get_container)):
    permissions = await c.sampler.get_location_permission_status()
    return {
        "battery_level": await c.device.get_battery_level(),
        "app_state": c.device.current_state().value,
        "foreground_permission": permissions["foreground"].value,
        "background_permission": permissions["background"].value,
    }


@router.post("/state")
async def update_device_state(payload: DeviceStateUpdate, c: Container = Depends(get_container)):
    previous = c.device.current_state()
    c.device.update(
        battery_level=payload.battery_level,
        app_state=payload.app_state,
        foreground_permission=payload.foreground_permission,
        background_permission=payload.background_permission,
    )
    if payload.background_permission is not None:
        c.event_store.set_background_location_enabled(payload.background_permission == PermissionStatus.granted)

    if payload.app_state is not None and payload.app_state != previous:
        logger.info(f"App state {previous.value} -> {payload.app_state.value}")
        await c.manager.handle_app_state_change(payload.app_state)

    return {"ok": True}


@router.post("/location")
async def post_location(payload: LocationObject, c: Container = Depends(get_container)):
    fix = location_from_object(payload)
    c.device.record_fix(fix)

    if c.event_store.is_location_tracking:
        await c.manager.update_user_location(
            UserLocation(
                latitude=fix.lat,
                longitude=fix.lng,
                accuracy=fix.accuracy or 10,
                timestamp=fix.timestamp,
            )
        )
    return {"ok": True}


# ------------------------------------------------------------------
# OS background tasks
# ------------------------------------------------------------------

@router.get("/tasks")
def task_registrations(c: Container = Depends(get_container)):
    return c.tasks.registrations()


@router.post("/tasks/{task_name}")
async def dispatch_task(task_name: str, payload: BackgroundTaskBody, c: Container = Depends(get_container)):
    if not c.tasks.is_task_defined(task_name):
        raise HTTPException(status_code=404, detail="Unknown task")
    await c.tasks.dispatch(task_name, payload)
    return {"ok": True}


@router.get("/background/status")
async def background_status(c: Container = Depends(get_container)):
    return await c.background.get_background_monitoring_status()


@router.get("/diagnostics")
def diagnostics(c: Container = Depends(get_container)):
    return {
        "breadcrumbs": c.reporter.breadcrumbs()[-20:],
        "errors": [{k: v for k, v in e.items() if k != "breadcrumbs"} for e in c.reporter.captured[-20:]],
    }
