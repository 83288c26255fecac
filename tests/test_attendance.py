"""
Tests for AttendanceController and the shoot-based option rules
Version: 2.0
"""

import pytest

from services.attendance import (
    ATTENDANCE_PATH,
    AttendanceController,
    AttendanceStatus,
    ShootWindow,
    allowed_statuses,
    disallowed_statuses,
    normalize_status,
)
from services.errors import NetworkError, UpstreamRejectedError, ValidationError
from services.local_store import FreedBookings, LocalStore
from services.my_day import BookingRecord, MyDayController
from services.session_store import Session

MORNING_SHOOT_ROWS = [
    {
        "Booking ID": "BK-10",
        "Shoot Name": "Morning Reel",
        "Date": "04/01/2026",
        "From Time": "9:00 am",
        "To Time": "1:00 pm",
        "Creator": "Meera",
    },
]


@pytest.fixture
def my_day(mock_gateway, mock_config, creator_session, mock_redis, confirm_yes, clock):
    freed = FreedBookings(LocalStore(mock_redis, client_id="device-1"))
    return MyDayController(mock_gateway, mock_config, creator_session, freed, confirm_yes, clock=clock)


@pytest.fixture
def controller(mock_gateway, creator_session, my_day, clock):
    return AttendanceController(mock_gateway, creator_session, my_day=my_day, clock=clock)


def route_reads(gateway, attendance=None, bookings=None):
    """Serve the attendance read and the My Day fetch from one get_json mock."""
    async def _get_json(url, params=None, timeout=None):
        if url == ATTENDANCE_PATH:
            if isinstance(attendance, Exception):
                raise attendance
            return attendance if attendance is not None else {"ok": True, "rows": []}
        if isinstance(bookings, Exception):
            raise bookings
        return bookings if bookings is not None else []

    gateway.get_json.side_effect = _get_json


class TestOptionRules:

    def test_morning_shoot(self):
        """A 09:00-13:00 shoot leaves present, second half-day leave and leave early."""
        options = allowed_statuses([ShootWindow(start=9 * 60, end=13 * 60)])
        assert options == [
            AttendanceStatus.PRESENT,
            AttendanceStatus.SECOND_HALF_LEAVE,
            AttendanceStatus.PARTIAL_EARLY,
        ]

    def test_evening_shoot(self):
        blocked = disallowed_statuses([ShootWindow(start=16 * 60, end=20 * 60)])
        assert blocked == {
            AttendanceStatus.ABSENT,
            AttendanceStatus.SECOND_HALF_LEAVE,
            AttendanceStatus.PARTIAL_EARLY,
        }

    def test_no_shoots_allows_everything(self):
        assert allowed_statuses([]) == list(AttendanceStatus)

    def test_overnight_shoot_end_wraps(self):
        record = BookingRecord.from_row({"From Time": "22:00", "To Time": "02:00"})
        window = ShootWindow.from_record(record)
        assert window == ShootWindow(start=22 * 60, end=26 * 60)

    def test_unparseable_start_is_ignored(self):
        assert ShootWindow.from_record(BookingRecord.from_row({"From Time": "tbd"})) is None

    @pytest.mark.parametrize("value,expected", [
        ("Present", "present"),
        ("Partial Day – Late Arrival", "partial-late"),
        ("FIRST-HALF-LEAVE", "first-half-leave"),
        ("", ""),
    ])
    def test_normalize_status(self, value, expected):
        assert normalize_status(value) == expected


class TestLoad:

    @pytest.mark.asyncio
    async def test_window_and_existing_records(self, controller, mock_gateway):
        route_reads(
            mock_gateway,
            attendance={"ok": True, "rows": [{"Date": "03 Jan 26", "Attendance": "Present"}]},
            bookings=MORNING_SHOOT_ROWS,
        )

        days = await controller.load()

        assert [d.key for d in days] == [
            "03 Jan 26", "04 Jan 26", "05 Jan 26", "06 Jan 26",
            "07 Jan 26", "08 Jan 26", "09 Jan 26",
        ]
        assert days[0].existing == "present"
        assert days[0].read_only is True
        assert AttendanceStatus.FIRST_HALF_LEAVE not in days[1].options
        assert days[2].options == list(AttendanceStatus)

    @pytest.mark.asyncio
    async def test_read_failures_do_not_block(self, controller, mock_gateway):
        route_reads(mock_gateway, attendance=NetworkError("down"), bookings=NetworkError("down"))

        days = await controller.load()

        assert len(days) == 7
        assert all(d.existing is None for d in days)

    @pytest.mark.asyncio
    async def test_missing_name(self, mock_gateway, clock):
        controller = AttendanceController(mock_gateway, Session("a@b.c", "", "Creator"), clock=clock)

        with pytest.raises(ValidationError):
            await controller.load()


class TestSubmit:

    @pytest.mark.asyncio
    async def test_first_write(self, controller, mock_gateway):
        route_reads(mock_gateway)
        mock_gateway.post_json.return_value = {"ok": True}
        await controller.load()

        await controller.submit("05 Jan 26", "present")

        mock_gateway.post_json.assert_awaited_once_with(
            ATTENDANCE_PATH,
            {
                "action": "write",
                "date": "05 Jan 26",
                "employee": "Asha",
                "attendance": "present",
                "key": "05 Jan 26Asha",
            },
            timeout=10.0,
        )
        assert controller.find("05 Jan 26").read_only is True
        mock_gateway.post_to_gateway.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disallowed_status(self, controller, mock_gateway):
        route_reads(mock_gateway, bookings=MORNING_SHOOT_ROWS)
        await controller.load()

        with pytest.raises(ValidationError) as exc:
            await controller.submit("04 Jan 26", AttendanceStatus.PARTIAL_LATE)
        assert exc.value.message == "Partial Day – Late Arrival is not available on a day with shoots"
        mock_gateway.post_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recorded_day_is_read_only(self, controller, mock_gateway):
        route_reads(mock_gateway, attendance={"ok": True, "rows": [{"Date": "03 Jan 26", "Attendance": "absent"}]})
        await controller.load()

        with pytest.raises(ValidationError):
            await controller.submit("03 Jan 26", "present")

    @pytest.mark.asyncio
    async def test_empty_status(self, controller, mock_gateway):
        route_reads(mock_gateway)
        await controller.load()

        with pytest.raises(ValidationError) as exc:
            await controller.submit("05 Jan 26", "")
        assert exc.value.message == "Please select an attendance status"

    @pytest.mark.asyncio
    async def test_outside_window(self, controller, mock_gateway):
        route_reads(mock_gateway)
        await controller.load()

        with pytest.raises(ValidationError):
            await controller.submit("10 Jan 26", "present")

    @pytest.mark.asyncio
    async def test_edit_sends_update_and_notifies(self, controller, mock_gateway):
        route_reads(mock_gateway, attendance={"ok": True, "rows": [{"Date": "03 Jan 26", "Attendance": "Absent"}]})
        mock_gateway.post_json.return_value = {"ok": True}
        await controller.load()

        controller.begin_edit("03 Jan 26")
        await controller.submit("03 Jan 26", "present")
        await controller.wait_for_notifications()

        assert mock_gateway.post_json.await_args.args[1]["action"] == "update"
        notification = mock_gateway.post_to_gateway.await_args.args[0]
        assert notification == {
            "action": "attendance_update",
            "employee": "Asha",
            "date": "03 Jan 26",
            "oldStatus": "absent",
            "newStatus": "present",
        }

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(self, controller, mock_gateway):
        route_reads(mock_gateway, attendance={"ok": True, "rows": [{"Date": "03 Jan 26", "Attendance": "Absent"}]})
        mock_gateway.post_json.return_value = {"ok": True}
        mock_gateway.post_to_gateway.side_effect = NetworkError("n8n down")
        await controller.load()

        controller.begin_edit("03 Jan 26")
        result = await controller.submit("03 Jan 26", "present")
        await controller.wait_for_notifications()

        assert result == {"ok": True}
        assert controller.find("03 Jan 26").existing == "present"

    @pytest.mark.asyncio
    async def test_script_rejection(self, controller, mock_gateway):
        route_reads(mock_gateway)
        mock_gateway.post_json.return_value = {"ok": False, "error": "Sheet locked"}
        await controller.load()

        with pytest.raises(UpstreamRejectedError) as exc:
            await controller.submit("05 Jan 26", "present")
        assert exc.value.message == "Sheet locked"
        assert controller.find("05 Jan 26").existing is None
