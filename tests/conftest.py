import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("STATUS_MONITORING_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.init_db import init_db
from app.schemas.enums import PermissionStatus
from app.services.device import DeviceState
from app.services.error_reporting import ErrorReporter
from app.services.kv_store import KeyValueStore

from fakes import FakeClock, FakePingClient, FakeSender, make_fix


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def kv(session_factory):
    return KeyValueStore(session_factory)


@pytest.fixture
def reporter():
    return ErrorReporter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def device(clock):
    state = DeviceState(clock=clock)
    state.update(
        battery_level=80,
        foreground_permission=PermissionStatus.granted,
        background_permission=PermissionStatus.granted,
    )
    state.record_fix(make_fix(ts=clock()))
    return state


@pytest.fixture
def ping_client():
    return FakePingClient()


@pytest.fixture
def sender():
    return FakeSender()
