"""
Booking Workflow
Version: 2.0

Lock -> fill details -> submit state machine for one booking draft.
DEPENDS ON: services/gateway_client.py, services/roster.py, services/time_slots.py

States:
    IDLE -> DATE_TIME_SELECTED -> LOCKED -> SUBMITTING -> SUBMITTED
Any date or time change while LOCKED drops back to DATE_TIME_SELECTED.

The lock is advisory. The upstream answers {"key": "Ongoing Booking"} when
somebody else is mid-booking; this side can only detect that and retry
later. Timers are asyncio tasks owned by the workflow and cancelled on
every exit from LOCKED.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from config import get_settings
from services.errors import (
    BookingAppError,
    LockConflictError,
    PermissionDeniedError,
    ValidationError,
)
from services.gateway_client import GatewayClient, new_request_id
from services.response_shapes import RosterResponse, normalize_roster, roster_names
from services.roster import Person, RosterSelection, parse_roster, roster_contains_user
from services.session_store import Session
from services.time_slots import (
    DATE_LABELS,
    TimeValidation,
    available_times,
    date_key_for_offset,
    generate_time_grid,
    validate_time_selection,
)

logger = logging.getLogger(__name__)
settings = get_settings()

ONGOING_BOOKING = "Ongoing Booking"
CONFLICT_MESSAGE = "someone else is booking try after 90 sec"
ALREADY_BOOKED_MESSAGE = "Your Already Booked for this slot."

ReloadCallback = Callable[[str], Union[None, Awaitable[None]]]


class BookingState(str, Enum):
    IDLE = "idle"
    DATE_TIME_SELECTED = "date_time_selected"
    LOCKED = "locked"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class BrandOrIP(str, Enum):
    BRAND = "brand"
    IP = "ip"


def build_lock_payload(session: Session, date_key: str, from_time: str, to_time: str) -> Dict[str, Any]:
    return {
        "action": "booking_lock",
        "command": "/slot_booking",
        "user": {"name": session.name, "role": session.role, "email": session.email},
        "dateKey": date_key,
        "fromTime": from_time,
        "toTime": to_time,
    }


def is_lock_conflict(response: Any) -> bool:
    return isinstance(response, dict) and response.get("key") == ONGOING_BOOKING


async def request_roster(
    gateway: GatewayClient,
    session: Session,
    date_key: str,
    from_time: str,
    to_time: str
) -> RosterResponse:
    """
    Issue the lock call and normalize the candidate roster it returns.

    Raises:
        LockConflictError: upstream reports an ongoing booking
    """
    response = await gateway.post_to_gateway(
        build_lock_payload(session, date_key, from_time, to_time)
    )
    if is_lock_conflict(response):
        raise LockConflictError(CONFLICT_MESSAGE)
    return normalize_roster(response)


@dataclass
class ShootDetails:
    shoot_name: str = ""
    brand: str = ""
    ip: str = ""
    no_of_shoot: Optional[int] = None
    location: str = ""

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.shoot_name.strip():
            missing.append("shootName")
        if not self.brand.strip() and not self.ip.strip():
            missing.append("brand or ip")
        if not self.no_of_shoot:
            missing.append("noOfShoot")
        if not self.location.strip():
            missing.append("location")
        return missing

    def to_payload(self) -> Dict[str, Any]:
        return {
            "shootName": self.shoot_name.strip(),
            "brand": self.brand.strip(),
            "ip": self.ip.strip(),
            "noOfShoot": self.no_of_shoot,
            "location": self.location,
        }


@dataclass
class BookingDraft:
    """In-memory draft. Never persisted."""
    state: BookingState = BookingState.IDLE
    date_offset: Optional[int] = None
    date_key: Optional[str] = None
    from_time: Optional[str] = None
    to_time: Optional[str] = None
    roster: RosterSelection = field(default_factory=RosterSelection)
    shoot: ShootDetails = field(default_factory=ShootDetails)
    request_id: Optional[str] = None
    last_error: Optional[str] = None


@dataclass
class SubmissionReceipt:
    request_id: str
    response: Any


class BookingWorkflow:
    """
    Booking controller for one logged-in user.

    Features:
    - 90 s lock hold: no submission in time -> reload
    - "Ongoing Booking" conflict -> reload after the retry delay
    - In-flight guard: a second concurrent submit is dropped
    - DOP/cast mutual exclusion through RosterSelection
    """

    def __init__(
        self,
        gateway: GatewayClient,
        session: Session,
        on_reload: Optional[ReloadCallback] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock_hold_seconds: Optional[float] = None,
        conflict_retry_seconds: Optional[float] = None,
        success_reset_seconds: Optional[float] = None
    ):
        """
        Args:
            gateway: Client for /api/n8n
            session: Current user
            on_reload: Called with a reason after every forced reload
            clock: Wall-clock provider (tests)
        """
        self.gateway = gateway
        self.session = session
        self.on_reload = on_reload
        self.clock = clock
        self.lock_hold_seconds = lock_hold_seconds if lock_hold_seconds is not None else settings.LOCK_HOLD_SECONDS
        self.conflict_retry_seconds = (
            conflict_retry_seconds if conflict_retry_seconds is not None else settings.CONFLICT_RETRY_SECONDS
        )
        self.success_reset_seconds = (
            success_reset_seconds if success_reset_seconds is not None else settings.SUCCESS_RESET_SECONDS
        )

        self.draft = BookingDraft()
        self._submit_in_flight = False
        self._lock_timer: Optional[asyncio.Task] = None
        self._reload_timer: Optional[asyncio.Task] = None
        self._reset_timer: Optional[asyncio.Task] = None

    # =========================================================================
    # READ-ONLY VIEW
    # =========================================================================

    @property
    def state(self) -> BookingState:
        return self.draft.state

    @property
    def submit_in_flight(self) -> bool:
        return self._submit_in_flight

    def _now(self) -> Optional[datetime]:
        return self.clock() if self.clock else None

    def date_options(self) -> List[Dict[str, Any]]:
        return [
            {"offset": i, "label": label, "dateKey": date_key_for_offset(i, self._now())}
            for i, label in enumerate(DATE_LABELS)
        ]

    def selectable_times(self) -> List[str]:
        if self.draft.date_offset is None:
            return generate_time_grid()
        return available_times(self.draft.date_offset, self._now())

    def time_validation(self) -> TimeValidation:
        return validate_time_selection(self.draft.from_time, self.draft.to_time)

    def can_submit(self) -> bool:
        return (
            self.draft.state == BookingState.LOCKED
            and not self.draft.shoot.missing_fields()
            and bool(self.draft.roster.cast)
        )

    # =========================================================================
    # DATE / TIME SELECTION
    # =========================================================================

    def select_date(self, offset: int) -> None:
        if offset not in range(len(DATE_LABELS)):
            raise ValidationError("Select today, tomorrow or the day after")

        self._begin_selection_change()
        self._release_lock("date changed")
        self.draft.date_offset = offset
        self.draft.date_key = date_key_for_offset(offset, self._now())

        # Times that are no longer selectable for the new day are dropped
        allowed = set(self.selectable_times())
        if self.draft.from_time not in allowed:
            self.draft.from_time = None
        if self.draft.to_time not in allowed:
            self.draft.to_time = None

        self._refresh_selection_state()

    def select_times(self, from_time: Optional[str], to_time: Optional[str]) -> TimeValidation:
        allowed = set(self.selectable_times())
        for value in (from_time, to_time):
            if value and value not in allowed:
                raise ValidationError(f"{value} is not a selectable time")

        self._begin_selection_change()
        self._release_lock("time changed")
        self.draft.from_time = from_time
        self.draft.to_time = to_time
        return self._refresh_selection_state()

    def _refresh_selection_state(self) -> TimeValidation:
        validation = self.time_validation()
        if self.draft.date_offset is not None and validation.valid:
            self.draft.state = BookingState.DATE_TIME_SELECTED
        else:
            self.draft.state = BookingState.IDLE
        return validation

    def _begin_selection_change(self) -> None:
        """
        Refuse changes while a submit is in flight. After a successful submit
        the pending reset is cancelled and a new draft keeps the date and times.
        """
        if self._submit_in_flight or self.draft.state == BookingState.SUBMITTING:
            raise ValidationError("A booking is being submitted")
        if self.draft.state == BookingState.SUBMITTED:
            self._cancel(self._reset_timer)
            self._reset_timer = None
            submitted = self.draft
            self.draft = BookingDraft(
                date_offset=submitted.date_offset,
                date_key=submitted.date_key,
                from_time=submitted.from_time,
                to_time=submitted.to_time,
            )

    def _release_lock(self, reason: str) -> None:
        """Drop the roster and the hold timer; the lock never survives a changed selection."""
        if self.draft.state != BookingState.LOCKED:
            return
        self._cancel(self._lock_timer)
        self._lock_timer = None
        self.draft.roster = RosterSelection()
        self.draft.state = BookingState.DATE_TIME_SELECTED
        logger.info(f"Lock released: {reason}")

    # =========================================================================
    # LOCK
    # =========================================================================

    async def lock(self) -> List[Person]:
        """
        Lock the selected slot and load the candidate roster.

        Returns:
            Roster people (empty when the upstream sent no names)

        Raises:
            ValidationError: no valid date/time selection
            LockConflictError: someone else is booking; a reload is scheduled
            PermissionDeniedError: roster does not contain the current user
            NetworkError / UpstreamHTTPError: transport or HTTP failure
        """
        if self.draft.state not in (BookingState.DATE_TIME_SELECTED, BookingState.LOCKED):
            validation = self.time_validation()
            message = validation.error if not validation.valid else "Select a date first"
            raise ValidationError(message)

        self.draft.last_error = None
        payload = build_lock_payload(
            self.session, self.draft.date_key, self.draft.from_time, self.draft.to_time
        )

        try:
            response = await self.gateway.post_to_gateway(payload)
        except BookingAppError as e:
            self.draft.last_error = e.message or "Failed to lock date and time"
            logger.warning(f"Lock failed: {self.draft.last_error}")
            raise

        if is_lock_conflict(response):
            self._release_lock("ongoing booking")
            self.draft.last_error = CONFLICT_MESSAGE
            self._schedule_conflict_reload()
            logger.info(f"Ongoing booking for {self.draft.date_key} {self.draft.from_time}-{self.draft.to_time}")
            raise LockConflictError(CONFLICT_MESSAGE)

        names = roster_names(normalize_roster(response))

        if names and not roster_contains_user(names, self.session.name):
            self._release_lock("not in roster")
            self.draft.last_error = ALREADY_BOOKED_MESSAGE
            raise PermissionDeniedError(ALREADY_BOOKED_MESSAGE)

        people = parse_roster(names)
        self._cancel(self._lock_timer)
        self.draft.roster = RosterSelection(people=people)
        self.draft.state = BookingState.LOCKED
        self._lock_timer = asyncio.create_task(
            self._reload_after(self.lock_hold_seconds, "lock hold expired")
        )

        logger.info(
            f"Slot locked: {self.draft.date_key} {self.draft.from_time}-{self.draft.to_time}, "
            f"roster={len(people)}"
        )
        return people

    # =========================================================================
    # DETAILS
    # =========================================================================

    def _require_locked(self) -> None:
        if self.draft.state != BookingState.LOCKED:
            raise ValidationError("Lock a date and time first")

    def select_dop(self, label: str, selected: bool = True) -> None:
        self._require_locked()
        try:
            self.draft.roster.select_dop(label, selected)
        except KeyError as e:
            raise ValidationError(str(e.args[0])) from e

    def select_cast(self, label: str, selected: bool = True) -> bool:
        self._require_locked()
        try:
            return self.draft.roster.select_cast(label, selected)
        except KeyError as e:
            raise ValidationError(str(e.args[0])) from e

    def set_shoot(
        self,
        shoot_name: Optional[str] = None,
        no_of_shoot: Optional[Union[int, str]] = None,
        location: Optional[str] = None
    ) -> ShootDetails:
        shoot = self.draft.shoot
        if shoot_name is not None:
            shoot.shoot_name = shoot_name
        if no_of_shoot is not None:
            if no_of_shoot == "":
                shoot.no_of_shoot = None
            else:
                try:
                    shoot.no_of_shoot = int(no_of_shoot)
                except (TypeError, ValueError) as e:
                    raise ValidationError("Number of shoots must be a number") from e
        if location is not None:
            shoot.location = location
        return shoot

    def choose_brand_or_ip(self, kind: Union[BrandOrIP, str], value: str) -> ShootDetails:
        """Brand and IP are mutually exclusive: picking one clears the other."""
        kind = BrandOrIP(kind)
        shoot = self.draft.shoot
        if kind == BrandOrIP.BRAND:
            shoot.brand = value or ""
            if shoot.brand:
                shoot.ip = ""
        else:
            shoot.ip = value or ""
            if shoot.ip:
                shoot.brand = ""
        return shoot

    # =========================================================================
    # SUBMIT
    # =========================================================================

    def build_submit_payload(self, request_id: str) -> Dict[str, Any]:
        payload = build_lock_payload(
            self.session, self.draft.date_key, self.draft.from_time, self.draft.to_time
        )
        payload["action"] = "booking_submit"
        payload["shoot"] = self.draft.shoot.to_payload()
        payload["selected"] = {
            "dops": list(self.draft.roster.dops),
            "names": list(self.draft.roster.cast),
        }
        payload["request_id"] = request_id
        return payload

    async def submit(self) -> Optional[SubmissionReceipt]:
        """
        Submit the locked draft.

        Returns:
            SubmissionReceipt, or None when another submit is already in flight

        Raises:
            ValidationError: not locked or required details missing
            NetworkError / UpstreamHTTPError: the draft stays LOCKED
        """
        if self._submit_in_flight:
            logger.info("Submit ignored: already in flight")
            return None
        self._submit_in_flight = True

        try:
            self._require_locked()
            missing = self.draft.shoot.missing_fields()
            if missing:
                raise ValidationError(f"Missing booking details: {', '.join(missing)}")
            if not self.draft.roster.cast:
                raise ValidationError("Select at least one cast member")

            request_id = new_request_id()
            self.draft.request_id = request_id
            self.draft.last_error = None
            self.draft.state = BookingState.SUBMITTING

            try:
                response = await self.gateway.post_to_gateway(self.build_submit_payload(request_id))
            except BookingAppError as e:
                # A reset during the request replaced the draft; leave it alone
                if self.draft.state == BookingState.SUBMITTING:
                    self.draft.state = BookingState.LOCKED
                self.draft.last_error = e.message or "Failed to submit booking"
                logger.warning(f"Submit failed: {self.draft.last_error}")
                raise

            self._cancel(self._lock_timer)
            self._lock_timer = None
            self.draft.state = BookingState.SUBMITTED
            self._reset_timer = asyncio.create_task(self._reset_after(self.success_reset_seconds))

            logger.info(f"Booking submitted: request_id={request_id}")
            return SubmissionReceipt(request_id=request_id, response=response)
        finally:
            self._submit_in_flight = False

    # =========================================================================
    # TIMERS / RESET
    # =========================================================================

    def _schedule_conflict_reload(self) -> None:
        if self._reload_timer and not self._reload_timer.done():
            return
        self._reload_timer = asyncio.create_task(
            self._reload_after(self.conflict_retry_seconds, "ongoing booking")
        )

    async def _reload_after(self, delay: float, reason: str) -> None:
        await asyncio.sleep(delay)
        logger.info(f"Reloading booking form: {reason}")
        await self.reload(reason)

    async def _reset_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.reset()

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()

    def reset(self) -> None:
        """Back to IDLE with an empty draft. The conflict reload, if pending, still fires."""
        self._cancel(self._lock_timer)
        self._cancel(self._reset_timer)
        self._lock_timer = None
        self._reset_timer = None
        self.draft = BookingDraft()

    async def reload(self, reason: str = "reload") -> None:
        """Full reset, the equivalent of reloading the page."""
        self.reset()
        self._cancel(self._reload_timer)
        self._reload_timer = None
        if self.on_reload is not None:
            result = self.on_reload(reason)
            if inspect.isawaitable(result):
                await result

    async def close(self) -> None:
        for task in (self._lock_timer, self._reload_timer, self._reset_timer):
            self._cancel(task)
        self._lock_timer = self._reload_timer = self._reset_timer = None
