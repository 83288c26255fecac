"""
Attendance
Version: 2.0

Seven-day attendance window with status options filtered by the day's shoots.
DEPENDS ON: services/gateway_client.py, services/my_day.py, services/time_slots.py

Option rules for a day with shoots:
    shoot starting before 11:30          -> no "late arrival"
    shoot starting before 15:00          -> no "first half-day leave"
    shoot starting or ending at/after 15:00 -> no "second half-day leave"
    shoot ending after 18:30             -> no "leave early"
    any shoot                            -> no "absent"
"Present" is always offered.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from services.errors import BookingAppError, UpstreamRejectedError, ValidationError
from services.gateway_client import GatewayClient
from services.my_day import BookingRecord, MyDayController
from services.session_store import Session
from services.time_slots import (
    UNPARSEABLE_MINUTES,
    now_local,
    parse_calendar_date,
    short_date,
)

logger = logging.getLogger(__name__)

ATTENDANCE_PATH = "/api/attendance"
WINDOW_DAYS = 7

LATE_ARRIVAL_CUTOFF = 11 * 60 + 30
HALF_DAY_CUTOFF = 15 * 60
LEAVE_EARLY_CUTOFF = 18 * 60 + 30
MINUTES_PER_DAY = 24 * 60


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    FIRST_HALF_LEAVE = "first-half-leave"
    SECOND_HALF_LEAVE = "second-half-leave"
    PARTIAL_LATE = "partial-late"
    PARTIAL_EARLY = "partial-early"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    AttendanceStatus.PRESENT: "Present",
    AttendanceStatus.ABSENT: "Absent",
    AttendanceStatus.FIRST_HALF_LEAVE: "First Half-Day Leave",
    AttendanceStatus.SECOND_HALF_LEAVE: "Second Half-Day Leave",
    AttendanceStatus.PARTIAL_LATE: "Partial Day – Late Arrival",
    AttendanceStatus.PARTIAL_EARLY: "Partial Day – Leave Early",
}

_LABEL_TO_STATUS = {label.lower(): status for status, label in STATUS_LABELS.items()}


def normalize_status(value: Any) -> str:
    """Upstream value or label -> option value. Unknown values are lowercased."""
    if not value:
        return ""
    s = str(value).strip()
    lowered = s.lower()
    if lowered in _LABEL_TO_STATUS:
        return _LABEL_TO_STATUS[lowered].value
    try:
        return AttendanceStatus(lowered).value
    except ValueError:
        return lowered


@dataclass(frozen=True)
class ShootWindow:
    """Shoot span in minutes since midnight of its own day; end may exceed 24h."""
    start: int
    end: int

    @classmethod
    def from_record(cls, record: BookingRecord) -> Optional["ShootWindow"]:
        start = record.start_minutes
        end = record.end_minutes
        if start == UNPARSEABLE_MINUTES:
            return None
        if end == UNPARSEABLE_MINUTES:
            end = start
        elif end <= start:
            end += MINUTES_PER_DAY
        return cls(start=start, end=end)


def disallowed_statuses(shoots: Iterable[ShootWindow]) -> Set[AttendanceStatus]:
    blocked: Set[AttendanceStatus] = set()
    for shoot in shoots:
        blocked.add(AttendanceStatus.ABSENT)
        if shoot.start < LATE_ARRIVAL_CUTOFF:
            blocked.add(AttendanceStatus.PARTIAL_LATE)
        if shoot.start < HALF_DAY_CUTOFF:
            blocked.add(AttendanceStatus.FIRST_HALF_LEAVE)
        if shoot.start >= HALF_DAY_CUTOFF or shoot.end >= HALF_DAY_CUTOFF:
            blocked.add(AttendanceStatus.SECOND_HALF_LEAVE)
        if shoot.end > LEAVE_EARLY_CUTOFF:
            blocked.add(AttendanceStatus.PARTIAL_EARLY)
    blocked.discard(AttendanceStatus.PRESENT)
    return blocked


def allowed_statuses(shoots: Iterable[ShootWindow]) -> List[AttendanceStatus]:
    blocked = disallowed_statuses(shoots)
    return [status for status in AttendanceStatus if status not in blocked]


@dataclass
class AttendanceDay:
    day: date
    shoots: List[ShootWindow] = field(default_factory=list)
    existing: Optional[str] = None
    editing: bool = False

    @property
    def key(self) -> str:
        return short_date(self.day)

    @property
    def weekday(self) -> str:
        return self.day.strftime("%A")

    @property
    def read_only(self) -> bool:
        return bool(self.existing) and not self.editing

    @property
    def options(self) -> List[AttendanceStatus]:
        return allowed_statuses(self.shoots)


class AttendanceController:
    """
    Attendance cards for today and the next six days.

    An already recorded day is read-only until begin_edit(); the edit is
    sent as an "update" and followed by a best-effort notification whose
    failure is only logged.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        session: Session,
        my_day: Optional[MyDayController] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.gateway = gateway
        self.session = session
        self.my_day = my_day
        self.clock = clock

        self.days: List[AttendanceDay] = []
        self._notifications: Set[asyncio.Task] = set()

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    def window(self) -> List[date]:
        today = now_local(self._now()).date()
        return [today + timedelta(days=i) for i in range(WINDOW_DAYS)]

    async def read_existing(self) -> Dict[str, str]:
        """{"14 Feb 26": "present", ...}; a failed read yields {}."""
        try:
            data = await self.gateway.get_json(
                ATTENDANCE_PATH, params={"action": "read", "employee": self.session.name}
            )
        except BookingAppError as e:
            logger.warning(f"Attendance read failed: {e.message}")
            return {}

        if not isinstance(data, dict) or data.get("ok") is not True or not isinstance(data.get("rows"), list):
            return {}

        records = {}
        for row in data["rows"]:
            if isinstance(row, dict) and row.get("Date") and row.get("Attendance"):
                records[str(row["Date"])] = normalize_status(row["Attendance"])
        return records

    async def shoots_by_day(self) -> Dict[date, List[ShootWindow]]:
        """One My Day fetch for the whole window, grouped by calendar day."""
        if self.my_day is None:
            return {}
        try:
            records = await self.my_day.load_bookings()
        except BookingAppError as e:
            logger.warning(f"Shoot schedule unavailable for attendance: {e.message}")
            return {}

        grouped: Dict[date, List[ShootWindow]] = {}
        for record in records:
            day = parse_calendar_date(record.date, self._now())
            shoot = ShootWindow.from_record(record)
            if day is None or shoot is None:
                continue
            grouped.setdefault(day, []).append(shoot)
        return grouped

    async def load(self) -> List[AttendanceDay]:
        if not self.session.name:
            raise ValidationError("User name not available")

        existing = await self.read_existing()
        shoots = await self.shoots_by_day()

        self.days = []
        for day in self.window():
            entry = AttendanceDay(day=day, shoots=shoots.get(day, []))
            entry.existing = existing.get(entry.key) or None
            self.days.append(entry)

        logger.info(f"Attendance window loaded: {sum(1 for d in self.days if d.existing)} recorded")
        return self.days

    def find(self, key: str) -> AttendanceDay:
        for entry in self.days:
            if entry.key == key:
                return entry
        raise ValidationError(f"{key} is outside the attendance window")

    def begin_edit(self, key: str) -> AttendanceDay:
        entry = self.find(key)
        if not entry.existing:
            raise ValidationError("Nothing recorded for this day yet")
        entry.editing = True
        return entry

    async def submit(self, key: str, status: Any) -> Dict[str, Any]:
        """
        Write (first time) or update (after begin_edit) one day's status.

        Raises:
            ValidationError: no status, disallowed status, or read-only day
            UpstreamRejectedError: script answered ok=false
        """
        entry = self.find(key)
        if entry.read_only:
            raise ValidationError("Attendance already recorded for this day")
        value = normalize_status(status)
        if not value:
            raise ValidationError("Please select an attendance status")
        try:
            chosen = AttendanceStatus(value)
        except ValueError as e:
            raise ValidationError(f"Unknown attendance status: {status}") from e
        if chosen not in entry.options:
            raise ValidationError(f"{chosen.label} is not available on a day with shoots")

        old_status = entry.existing
        action = "update" if old_status else "write"
        payload = {
            "action": action,
            "date": entry.key,
            "employee": self.session.name,
            "attendance": chosen.value,
            "key": f"{entry.key}{self.session.name}",
        }

        result = await self.gateway.post_json(ATTENDANCE_PATH, payload, timeout=self.gateway.read_timeout)
        if not isinstance(result, dict) or result.get("ok") is False:
            message = result.get("error") or result.get("message") if isinstance(result, dict) else None
            raise UpstreamRejectedError(message or "Failed to submit attendance")

        entry.existing = chosen.value
        entry.editing = False
        logger.info(f"Attendance {action}: {entry.key} -> {chosen.value}")

        if action == "update" and old_status != chosen.value:
            self._schedule_notification(entry.key, old_status, chosen.value)
        return result

    # =========================================================================
    # NOTIFICATION (fire-and-forget)
    # =========================================================================

    def _schedule_notification(self, day_key: str, old_status: str, new_status: str) -> None:
        task = asyncio.create_task(self._notify(day_key, old_status, new_status))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def _notify(self, day_key: str, old_status: str, new_status: str) -> None:
        payload = {
            "action": "attendance_update",
            "employee": self.session.name,
            "date": day_key,
            "oldStatus": old_status,
            "newStatus": new_status,
        }
        try:
            await self.gateway.post_to_gateway(payload)
        except BookingAppError as e:
            logger.warning(f"Attendance change notification failed: {e.message}")

    async def wait_for_notifications(self) -> None:
        if self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)
