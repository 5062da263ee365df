from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.schemas.venue import Venue, VenueEventEntry, VenueEventSession, VenueExitRequest
from app.services.container import Container, get_container
from app.services.venue_hours import format_time_until_change, get_next_hooked_hours_change

router = APIRouter()


# ------------------------------------------------------------------
# Ping sessions
# ------------------------------------------------------------------

@router.get("/sessions")
def list_sessions(c: Container = Depends(get_container)):
    return [s.to_wire() for s in c.presence.get_active_venues()]


@router.post("/sessions", status_code=201)
async def add_session(payload: VenueEventSession, c: Container = Depends(get_container)):
    try:
        await c.presence.add_venue_session(payload)
    except Exception as e:
        logger.error(f"add_session failed | venue_id={payload.venue_id} err={e}")
        raise HTTPException(status_code=500, detail="Failed to start venue session")
    return {"ok": True, "active_venues": len(c.presence.get_active_venues())}


@router.delete("/sessions/{venue_id}")
async def remove_session(venue_id: str, c: Container = Depends(get_container)):
    removed = await c.presence.remove_venue_session(venue_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Venue session not found")
    return {"ok": True, "active_venues": len(c.presence.get_active_venues())}


@router.delete("/sessions")
async def clear_sessions(c: Container = Depends(get_container)):
    await c.presence.cleanup()
    return {"ok": True}


@router.post("/ping")
async def force_ping(c: Container = Depends(get_container)):
    results = await c.scheduler.force_immediate_ping()
    return {
        "results": [r.to_wire() for r in results],
        "next_ping_interval": c.scheduler.current_interval,
    }


@router.get("/ping/stats")
def ping_stats(c: Container = Depends(get_container)):
    return c.scheduler.get_ping_stats()


@router.get("/status")
async def monitoring_status(c: Container = Depends(get_container)):
    return await c.presence.get_comprehensive_monitoring_status()


# ------------------------------------------------------------------
# Entry / exit
# ------------------------------------------------------------------

@router.post("/entry", status_code=201)
async def venue_entry(payload: VenueEventEntry, c: Container = Depends(get_container)):
    try:
        await c.manager.handle_venue_entry(payload)
    except Exception as e:
        logger.error(f"venue_entry failed | venue_id={payload.venue_id} err={e}")
        raise HTTPException(status_code=500, detail="Failed to enter venue")
    return {"ok": True, "current_venue_id": c.event_store.get_current_venue_id()}


@router.post("/exit")
async def venue_exit(payload: VenueExitRequest, c: Container = Depends(get_container)):
    exited = await c.manager.handle_venue_exit(payload.reason)
    if not exited:
        raise HTTPException(status_code=404, detail="Not currently in a venue")
    return {"ok": True}


@router.get("/current")
def current_entry(c: Container = Depends(get_container)):
    entry = c.event_store.current_venue_entry
    return {
        "entry": entry.to_wire() if entry else None,
        "in_venue": c.event_store.is_currently_in_venue(),
    }


@router.get("/history")
def venue_history(c: Container = Depends(get_container)):
    return [h.to_wire() for h in c.event_store.get_venue_history()]


# ------------------------------------------------------------------
# Monitored venues
# ------------------------------------------------------------------

def _next_change(venue: Venue, now: datetime):
    change = get_next_hooked_hours_change(venue, now)
    return {
        "at": change.next_change_time.isoformat() if change.next_change_time else None,
        "will_be_active": change.will_be_active,
        "description": change.description,
        "time_until": format_time_until_change(change.next_change_time, now) if change.next_change_time else None,
    }


@router.get("/monitored")
def list_monitored(c: Container = Depends(get_container)):
    store = c.event_store
    now = datetime.now()
    return [
        {
            "venue": v.to_wire(),
            "status": store.venue_statuses[v.id].to_wire() if v.id in store.venue_statuses else None,
            "next_change": _next_change(v, now),
        }
        for v in store.monitored_venues
    ]


@router.post("/monitored", status_code=201)
async def add_monitored(payload: Venue, c: Container = Depends(get_container)):
    await c.manager.add_venue_to_monitoring(payload)
    return {"ok": True}


@router.delete("/monitored/{venue_id}")
async def remove_monitored(venue_id: str, c: Container = Depends(get_container)):
    if c.event_store.get_monitored_venue(venue_id) is None:
        raise HTTPException(status_code=404, detail="Venue not monitored")
    await c.manager.remove_venue_from_monitoring(venue_id)
    return {"ok": True}


@router.get("/monitored/{venue_id}/verify")
async def verify_at_venue(venue_id: str, radius_m: float = 50, c: Container = Depends(get_container)):
    venue = c.event_store.get_monitored_venue(venue_id)
    if venue is None:
        raise HTTPException(status_code=404, detail="Venue not monitored")

    fix = await c.sampler.get_current_location(high_accuracy=True)
    if fix is None:
        raise HTTPException(status_code=409, detail="No current location")

    venue_lng, venue_lat = venue.coordinates
    return asdict(c.sampler.verify_user_at_venue(fix, venue_lat, venue_lng, radius_m))


@router.get("/manager/stats")
def manager_stats(c: Container = Depends(get_container)):
    return c.manager.get_stats()
