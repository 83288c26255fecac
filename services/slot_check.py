"""
Slot Check
Version: 2.0

Read-only availability queries. No locking, no idempotency key.
DEPENDS ON: services/gateway_client.py, services/lookups.py

Modes (one active at a time):
- TIME: who is free in a date + time window, DOPs and creators sorted apart
- CREATORS: per-creator available/booked ranges and the common free window
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Union

from services.errors import ValidationError
from services.gateway_client import GatewayClient
from services.lookups import LookupClient
from services.response_shapes import normalize_roster, roster_names
from services.roster import Person, parse_roster, partition
from services.session_store import Session
from services.time_slots import DATE_LABELS, date_key_for_offset, validate_time_selection

logger = logging.getLogger(__name__)


class SlotCheckMode(str, Enum):
    TIME = "time"
    CREATORS = "creators"


def split_ranges(value: Any) -> List[str]:
    """Newline-separated "12:00 am to 4:00 pm" ranges."""
    if not value:
        return []
    return [line.strip() for line in str(value).split("\n") if line.strip()]


@dataclass
class TimeAvailability:
    dops: List[Person] = field(default_factory=list)
    creators: List[Person] = field(default_factory=list)

    @property
    def people(self) -> List[Person]:
        return self.dops + self.creators

    @property
    def total(self) -> int:
        return len(self.dops) + len(self.creators)


@dataclass
class CreatorAvailability:
    name: str
    available: List[str] = field(default_factory=list)
    booked: List[str] = field(default_factory=list)


@dataclass
class CreatorsAvailability:
    creators: List[CreatorAvailability] = field(default_factory=list)
    common_free: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, response: Any) -> "CreatorsAvailability":
        if not isinstance(response, dict) or not isinstance(response.get("data"), list):
            logger.warning("Creators availability response has no data array")
            return cls()
        creators = []
        for entry in response["data"]:
            if not isinstance(entry, dict):
                continue
            creators.append(CreatorAvailability(
                name=str(entry.get("Creators") or "Unknown"),
                available=split_ranges(entry.get("Available")),
                booked=split_ranges(entry.get("Booked")),
            ))
        return cls(creators=creators, common_free=split_ranges(response.get("common_free_text")))


class SlotCheckController:
    def __init__(
        self,
        gateway: GatewayClient,
        session: Session,
        lookups: Optional[LookupClient] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.gateway = gateway
        self.session = session
        self.lookups = lookups
        self.clock = clock

        self.mode = SlotCheckMode.TIME
        self.result: Optional[Union[TimeAvailability, CreatorsAvailability]] = None

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    def _user_payload(self) -> dict:
        return {"name": self.session.name, "role": self.session.role, "email": self.session.email}

    def _date_key(self, offset: int) -> str:
        if offset not in range(len(DATE_LABELS)):
            raise ValidationError("Select today, tomorrow or the day after")
        return date_key_for_offset(offset, self._now())

    def set_mode(self, mode: Union[SlotCheckMode, str]) -> None:
        mode = SlotCheckMode(mode)
        if mode != self.mode:
            self.mode = mode
            self.result = None

    async def available_creators(self) -> List[str]:
        if self.lookups is None:
            return []
        return await self.lookups.get_creators()

    async def check_time(self, offset: int, from_time: str, to_time: str) -> TimeAvailability:
        validation = validate_time_selection(from_time, to_time)
        if not validation.valid:
            raise ValidationError(validation.error)
        self.set_mode(SlotCheckMode.TIME)

        payload = {
            "action": "slotcheck_time",
            "command": "/slot_check",
            "user": self._user_payload(),
            "dateKey": self._date_key(offset),
            "fromTime": from_time,
            "toTime": to_time,
        }
        response = await self.gateway.post_to_gateway(payload)

        dops, creators = partition(parse_roster(roster_names(normalize_roster(response))))
        self.result = TimeAvailability(dops=dops, creators=creators)
        logger.info(f"Time check: {len(dops)} DOP, {len(creators)} Creator")
        return self.result

    async def check_creators(self, offset: int, creators: Iterable[str]) -> CreatorsAvailability:
        chosen = [c for c in dict.fromkeys(creators) if c and str(c).strip()]
        if not chosen:
            raise ValidationError("Select at least one creator")
        self.set_mode(SlotCheckMode.CREATORS)

        payload = {
            "action": "slotcheck_creators",
            "command": "/slot_check",
            "user": self._user_payload(),
            "dateKey": self._date_key(offset),
            "creators": chosen,
        }
        response = await self.gateway.post_to_gateway(payload)

        self.result = CreatorsAvailability.from_response(response)
        logger.info(f"Creators check: {len(self.result.creators)} creators")
        return self.result
