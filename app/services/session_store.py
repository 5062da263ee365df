from __future__ import annotations

from typing import Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from app.schemas.venue import VenueEventSession
from app.services.kv_store import KeyValueStore

ACTIVE_VENUES_KEY = "active_venue_sessions"


class VenueSessionStore:
    """Checked-in venue sessions keyed by venue id, written through on every mutation."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        self._sessions: Dict[str, VenueEventSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, venue_id: str) -> bool:
        return venue_id in self._sessions

    def get(self, venue_id: str) -> Optional[VenueEventSession]:
        return self._sessions.get(venue_id)

    def all(self) -> List[VenueEventSession]:
        return list(self._sessions.values())

    def add(self, session: VenueEventSession) -> None:
        self._sessions[session.venue_id] = session
        self.save()

    def remove(self, venue_id: str) -> Optional[VenueEventSession]:
        session = self._sessions.pop(venue_id, None)
        if session is not None:
            self.save()
        return session

    def set_active(self, venue_id: str, is_active: bool) -> None:
        session = self._sessions.get(venue_id)
        if session is not None:
            self._sessions[venue_id] = session.model_copy(update={"is_active": is_active})

    def clear(self) -> None:
        self._sessions.clear()
        self.save()

    # ---------------------------
    # Persistence
    # ---------------------------

    def save(self) -> None:
        try:
            self._kv.set_json(ACTIVE_VENUES_KEY, [s.to_wire() for s in self._sessions.values()])
        except Exception as e:
            logger.error(f"Error saving active venues: {e}")

    def load(self) -> int:
        stored = self._kv.get_json(ACTIVE_VENUES_KEY, default=[])
        self._sessions.clear()
        for raw in stored or []:
            try:
                session = VenueEventSession.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping unreadable venue session: {e}")
                continue
            self._sessions[session.venue_id] = session
        logger.info(f"Loaded {len(self._sessions)} active venues")
        return len(self._sessions)
