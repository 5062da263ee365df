from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from app.core.db import SessionLocal
from app.services.background_processor import BackgroundLocationProcessor
from app.services.device import DeviceState, HostTaskBridge
from app.services.error_reporting import ErrorReporter
from app.services.kv_store import KeyValueStore
from app.services.location_sampler import LocationSampler
from app.services.notification_bridge import NotificationBridge
from app.services.ping_scheduler import PingScheduler
from app.services.session_store import VenueSessionStore
from app.services.venue_event_manager import VenueEventManager
from app.services.venue_event_store import VenueEventStore
from app.services.venue_ping_client import VenuePingClient
from app.services.venue_presence import VenuePresenceService


@dataclass
class Container:
    kv: KeyValueStore
    reporter: ErrorReporter
    device: DeviceState
    tasks: HostTaskBridge
    client: VenuePingClient
    sampler: LocationSampler
    sessions: VenueSessionStore
    notifications: NotificationBridge
    scheduler: PingScheduler
    background: BackgroundLocationProcessor
    presence: VenuePresenceService
    event_store: VenueEventStore
    manager: VenueEventManager


def build_container(
    session_factory: sessionmaker = SessionLocal,
    client: Optional[VenuePingClient] = None,
    notifications: Optional[NotificationBridge] = None,
    device: Optional[DeviceState] = None,
) -> Container:
    kv = KeyValueStore(session_factory)
    reporter = ErrorReporter()
    device = device or DeviceState()
    tasks = HostTaskBridge()
    client = client or VenuePingClient()
    notifications = notifications or NotificationBridge(kv, reporter)

    sampler = LocationSampler(device, kv, reporter)
    sessions = VenueSessionStore(kv)
    scheduler = PingScheduler(sessions, sampler, device, device, client, kv, reporter)
    background = BackgroundLocationProcessor(tasks, sampler, device, client, notifications, kv, reporter)
    presence = VenuePresenceService(sessions, scheduler, background, sampler, notifications, reporter)
    event_store = VenueEventStore(kv)
    manager = VenueEventManager(event_store, presence, scheduler, background, sampler, notifications, reporter)

    return Container(
        kv=kv,
        reporter=reporter,
        device=device,
        tasks=tasks,
        client=client,
        sampler=sampler,
        sessions=sessions,
        notifications=notifications,
        scheduler=scheduler,
        background=background,
        presence=presence,
        event_store=event_store,
        manager=manager,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
