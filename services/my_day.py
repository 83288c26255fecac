"""
My Day
Version: 2.0

A user's bookings: fetch, sort, and the delete / free / edit-team flows.
DEPENDS ON: services/gateway_client.py, services/lookups.py,
            services/local_store.py, services/booking_workflow.py

Every mutation is its own round trip behind its own confirmation step.
Nothing is changed locally before the upstream has answered.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import get_settings
from services.booking_workflow import request_roster
from services.errors import BookingAppError, PermissionDeniedError, ValidationError
from services.gateway_client import GatewayClient, new_request_id
from services.local_store import FreedBookings
from services.lookups import ClientConfig
from services.response_shapes import normalize_rows, roster_names
from services.roster import DOP_MARKER, ROLE_SEPARATOR, Person, RosterSelection, parse_person, parse_roster
from services.session_store import Session
from services.time_slots import (
    UNPARSEABLE_MINUTES,
    date_bucket,
    format_short_date,
    format_time,
    minutes_to_hhmm,
    now_local,
    parse_calendar_date,
    parse_time_to_minutes,
)

logger = logging.getLogger(__name__)
settings = get_settings()

MISSING = "-"

ConfirmCallback = Callable[[str], Awaitable[bool]]


def _field(row: Dict[str, Any], *names: str) -> str:
    for name in names:
        value = row.get(name)
        if value is not None:
            return str(value)
    return MISSING


def split_names(value: Optional[str]) -> List[str]:
    """"Asha, Ravi - DOP" -> ["Asha", "Ravi - DOP"]; "-" means nobody."""
    if not value or value.strip() == MISSING:
        return []
    return [n.strip() for n in value.split(",") if n.strip() and n.strip() != MISSING]


@dataclass
class BookingRecord:
    """One upstream booking row with its field aliases resolved."""
    booking_id: str = MISSING
    shoot_name: str = MISSING
    type: str = "N/A"
    b_ip_name: str = MISSING
    date: str = MISSING
    from_time: str = MISSING
    to_time: str = MISSING
    role: str = MISSING
    creator: str = MISSING
    location: str = MISSING
    dop: str = MISSING
    cast: str = MISSING
    no_of_shoot: str = MISSING
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BookingRecord":
        return cls(
            booking_id=_field(row, "Booking ID", "ID"),
            shoot_name=_field(row, "Shoot Name"),
            type=str(row["Type"]) if row.get("Type") is not None else "N/A",
            b_ip_name=_field(row, "B_IP_Name"),
            date=_field(row, "Date", "Shoot Date", "Booking Date"),
            from_time=_field(row, "From Time"),
            to_time=_field(row, "To Time"),
            role=_field(row, "Role"),
            creator=_field(row, "Creator"),
            location=_field(row, "Location"),
            dop=_field(row, "DOP"),
            cast=_field(row, "Cast"),
            no_of_shoot=_field(row, "No Of Shoot"),
            raw=dict(row),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "bookingId": self.booking_id,
            "shootName": self.shoot_name,
            "type": self.type,
            "bIpName": self.b_ip_name,
            "date": self.date,
            "fromTime": self.from_time,
            "toTime": self.to_time,
            "role": self.role,
            "creator": self.creator,
            "location": self.location,
            "dop": self.dop,
            "cast": self.cast,
        }

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.from_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.to_time)

    @property
    def display_date(self) -> str:
        return format_short_date(self.date)

    @property
    def display_from(self) -> str:
        return format_time(self.from_time)

    @property
    def display_to(self) -> str:
        return format_time(self.to_time)

    @property
    def dop_names(self) -> List[str]:
        return split_names(self.dop)

    @property
    def cast_names(self) -> List[str]:
        return split_names(self.cast)

    def is_created_by(self, user_name: str) -> bool:
        current = (user_name or "").strip().lower()
        return bool(current) and current == self.creator.strip().lower()

    def starts_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Start as an aware datetime in the booking timezone, or None if unparseable."""
        day = parse_calendar_date(self.date, now)
        minutes = self.start_minutes
        if day is None or minutes == UNPARSEABLE_MINUTES:
            return None
        tzinfo = now_local(now).tzinfo
        return datetime(day.year, day.month, day.day, tzinfo=tzinfo) + timedelta(minutes=minutes)


def sort_bookings(records: List[BookingRecord], now: Optional[datetime] = None) -> List[BookingRecord]:
    """Today first, then tomorrow, then the rest; start time ascending within each. Stable."""
    return sorted(records, key=lambda r: (date_bucket(r.date, now), r.start_minutes))


def count_badges(records: List[BookingRecord], now: Optional[datetime] = None) -> Dict[str, int]:
    counts = {"today": 0, "tomorrow": 0}
    for record in records:
        bucket = date_bucket(record.date, now)
        if bucket == 0:
            counts["today"] += 1
        elif bucket == 1:
            counts["tomorrow"] += 1
    return counts


def _dop_label(name: str) -> str:
    return name if DOP_MARKER in name else f"{name}{ROLE_SEPARATOR}DOP"


@dataclass
class TeamEdit:
    """Edit-team session for one booking: the merged roster and the original picks."""
    record: BookingRecord
    selection: RosterSelection
    old_dops: List[str]
    old_cast: List[str]

    @staticmethod
    def _people(labels: List[str]) -> List[Person]:
        return [parse_person(label) for label in labels]

    def diff(self) -> Dict[str, List[str]]:
        """Names removed from and added to the team, compared across both roles."""
        old = self._people(self.old_dops + self.old_cast)
        new = self._people(self.selection.dops + self.selection.cast)
        old_keys = {p.key for p in old}
        new_keys = {p.key for p in new}

        removed, added, seen = [], [], set()
        for person in old:
            if person.key not in new_keys and person.key not in seen:
                removed.append(person.name)
                seen.add(person.key)
        for person in new:
            if person.key not in old_keys and person.key not in seen:
                added.append(person.name)
                seen.add(person.key)
        return {"removeUsers": removed, "addUsers": added}


class MyDayController:
    """
    Bookings list for the logged-in user.

    Features:
    - Delete: booking creator only, with a reason
    - Free: everyone else on the booking, once per device (FreedBookings)
    - Edit team: creator only, before the booking starts
    """

    def __init__(
        self,
        gateway: GatewayClient,
        config: ClientConfig,
        session: Session,
        freed: FreedBookings,
        confirm: ConfirmCallback,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.gateway = gateway
        self.config = config
        self.session = session
        self.freed = freed
        self.confirm = confirm
        self.clock = clock

        self.bookings: List[BookingRecord] = []
        self.last_error: Optional[str] = None

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    def _user_payload(self) -> Dict[str, str]:
        return {
            "name": self.session.name or MISSING,
            "role": self.session.role or MISSING,
            "email": self.session.email or MISSING,
        }

    # =========================================================================
    # FETCH
    # =========================================================================

    async def load_bookings(self) -> List[BookingRecord]:
        """
        Fetch and sort this user's bookings.

        Raises:
            ValidationError: session has no name or the script is not configured
            UpstreamRejectedError: ok=false or no rows array
            NetworkError / UpstreamHTTPError
        """
        self.last_error = None
        if not self.session.name:
            raise ValidationError("User name is missing from the session")

        url = await self.config.require("google_myday_script_url")
        params = {
            "employee": self.session.name,
            "name": self.session.name,
            "role": self.session.normalized_role,
            "key": settings.BOOKING_API_KEY,
        }

        try:
            data = await self.gateway.get_json(url, params=params)
            rows = normalize_rows(data)
        except BookingAppError as e:
            self.last_error = e.message
            logger.warning(f"Failed to load bookings: {e.message}")
            raise

        records = [BookingRecord.from_row(row) for row in rows]
        self.bookings = sort_bookings(records, self._now())
        logger.info(f"Loaded {len(self.bookings)} bookings for {self.session.normalized_role}")
        return self.bookings

    def badges(self) -> Dict[str, int]:
        return count_badges(self.bookings, self._now())

    async def _refresh_after_mutation(self) -> None:
        try:
            await self.load_bookings()
        except BookingAppError as e:
            logger.warning(f"Bookings refresh after mutation failed: {e.message}")

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def can_delete(self, record: BookingRecord) -> bool:
        return record.is_created_by(self.session.name)

    def can_edit(self, record: BookingRecord) -> bool:
        return record.is_created_by(self.session.name)

    async def can_free(self, record: BookingRecord) -> bool:
        if record.is_created_by(self.session.name):
            return False
        return not await self.freed.has_freed(record.booking_id, self.session.name)

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_booking(self, record: BookingRecord, reason: str) -> bool:
        """
        Returns:
            True when deleted, False when the user declined the confirmation
        """
        if not self.can_delete(record):
            raise PermissionDeniedError("Only the booking creator can delete this booking")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Please enter a reason for deleting this booking")

        message = (
            "Are you sure you want to delete this booking?\n\n"
            f"Shoot: {record.shoot_name}\nDate: {record.date}\nTime: {record.from_time}\n\n"
            "This action cannot be undone."
        )
        if not await self.confirm(message):
            return False

        booking = record.to_payload()
        booking["reason"] = reason
        payload = {
            "action": "delete_booking",
            "command": "/delete_booking",
            "booking": booking,
            "user": self._user_payload(),
        }
        await self.gateway.post_to_gateway(payload)
        logger.info(f"Booking deleted: {record.booking_id}")

        await self._refresh_after_mutation()
        return True

    # =========================================================================
    # FREE
    # =========================================================================

    async def free_booking(self, record: BookingRecord) -> bool:
        """
        Release the current user from a booking.

        The local ledger entry is best-effort: it only hides the option on
        this client.
        """
        if record.is_created_by(self.session.name):
            raise PermissionDeniedError("The booking creator cannot free this booking")
        if await self.freed.has_freed(record.booking_id, self.session.name):
            raise ValidationError("You have already freed this booking")

        message = (
            "Free yourself from this booking?\n\n"
            f"Shoot: {record.shoot_name}\nDate: {record.date}\nTime: {record.from_time}"
        )
        if not await self.confirm(message):
            return False

        payload = {
            "action": "free_booking",
            "command": "/free_booking",
            "booking": record.to_payload(),
            "user": self._user_payload(),
        }
        await self.gateway.post_to_gateway(payload)
        await self.freed.mark_freed(record.booking_id, self.session.name)

        await self._refresh_after_mutation()
        return True

    # =========================================================================
    # EDIT TEAM
    # =========================================================================

    def _ensure_not_started(self, record: BookingRecord) -> None:
        now = self._now()
        start = record.starts_at(now)
        if start is None:
            raise ValidationError("Cannot determine the booking start time")
        if start <= now_local(now):
            raise PermissionDeniedError("This booking has already started and can no longer be edited")

    async def start_edit(self, record: BookingRecord) -> TeamEdit:
        """
        Step 1: fetch a fresh roster for the booking's slot and merge the
        current assignees into it so they stay selectable.
        """
        if not self.can_edit(record):
            raise PermissionDeniedError("Only the booking creator can edit the team")
        self._ensure_not_started(record)

        day = parse_calendar_date(record.date, self._now())
        end = record.end_minutes
        if end == UNPARSEABLE_MINUTES:
            raise ValidationError("Cannot determine the booking end time")

        roster = await request_roster(
            self.gateway,
            self.session,
            day.isoformat(),
            minutes_to_hhmm(record.start_minutes),
            minutes_to_hhmm(end),
        )

        people = parse_roster(roster_names(roster))
        known = {p.key: p for p in people}

        old_dops = [_dop_label(n) for n in record.dop_names]
        old_cast = list(record.cast_names)

        def resolve(label: str) -> str:
            person = parse_person(label)
            existing = known.get(person.key)
            if existing is None:
                people.append(person)
                known[person.key] = person
                return person.label
            return existing.label

        selection = RosterSelection(people=people)
        for label in old_cast:
            resolved = resolve(label)
            if resolved not in selection.cast:
                selection.cast.append(resolved)
        for label in old_dops:
            resolved = resolve(label)
            person = selection.find(resolved)
            if person is None or not person.is_dop:
                # Listed under another role on the fresh roster; keep them as DOP
                person = parse_person(label)
                if selection.find(person.label) is None:
                    people.append(person)
                resolved = person.label
            selection.select_dop(resolved)

        logger.info(f"Edit started for booking {record.booking_id}: roster={len(people)}")
        return TeamEdit(record=record, selection=selection, old_dops=old_dops, old_cast=old_cast)

    async def submit_edit(self, edit: TeamEdit) -> Optional[Any]:
        """
        Step 2: send only the diff plus the full new DOP/cast strings.

        Returns:
            Upstream response, or None when the user declined the confirmation
        """
        self._ensure_not_started(edit.record)
        if not edit.selection.cast:
            raise ValidationError("Select at least one cast member")

        diff = edit.diff()
        if not diff["removeUsers"] and not diff["addUsers"]:
            raise ValidationError("No changes to the team")

        lines = []
        if diff["removeUsers"]:
            lines.append(f"Remove: {', '.join(diff['removeUsers'])}")
        if diff["addUsers"]:
            lines.append(f"Add: {', '.join(diff['addUsers'])}")
        if not await self.confirm(f"Update the team for {edit.record.shoot_name}?\n\n" + "\n".join(lines)):
            return None

        booking = edit.record.to_payload()
        booking.update({
            "oldDop": edit.record.dop,
            "newDop": ", ".join(edit.selection.dops),
            "oldCast": edit.record.cast,
            "newCast": ", ".join(edit.selection.cast),
        })
        payload = {
            "action": "update_booking",
            "command": "/update_booking",
            "booking": booking,
            "removeUsers": diff["removeUsers"],
            "addUsers": diff["addUsers"],
            "user": self._user_payload(),
            "request_id": new_request_id(),
        }
        response = await self.gateway.post_to_gateway(payload)
        logger.info(
            f"Team updated for booking {edit.record.booking_id}: "
            f"-{len(diff['removeUsers'])} +{len(diff['addUsers'])}"
        )

        await self._refresh_after_mutation()
        return response
