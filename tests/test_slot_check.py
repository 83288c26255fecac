"""
Tests for SlotCheckController and the lookup clients
Version: 2.0
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.errors import NetworkError, ValidationError
from services.lookups import ClientConfig, LookupClient
from services.slot_check import (
    CreatorsAvailability,
    SlotCheckController,
    SlotCheckMode,
    TimeAvailability,
    split_ranges,
)

CREATORS_RESPONSE = {
    "data": [
        {"Creators": "Asha", "Available": "12:00 am to 10:00 am\n6:00 pm to 11:59 pm", "Booked": "10:00 am to 6:00 pm"},
        {"Creators": "Meera", "Available": "12:00 am to 11:59 pm", "Booked": ""},
    ],
    "common_free_text": "12:00 am to 10:00 am\n6:00 pm to 11:59 pm",
}


@pytest.fixture
def controller(mock_gateway, creator_session, clock):
    return SlotCheckController(mock_gateway, creator_session, clock=clock)


class TestTimeCheck:

    @pytest.mark.asyncio
    async def test_people_are_grouped_and_sorted(self, controller, mock_gateway, sample_roster):
        mock_gateway.post_to_gateway.return_value = [{"name": sample_roster}]

        result = await controller.check_time(1, "14:00", "16:00")

        payload = mock_gateway.post_to_gateway.await_args.args[0]
        assert payload["action"] == "slotcheck_time"
        assert payload["dateKey"] == "2026-01-04"
        assert "request_id" not in payload
        assert isinstance(result, TimeAvailability)
        assert [p.label for p in result.dops] == ["Kabir - DOP", "Ravi - DOP"]
        assert [p.label for p in result.creators] == ["Asha - Creator", "Meera - Creator"]
        assert result.total == 4

    @pytest.mark.asyncio
    async def test_nobody_free(self, controller, mock_gateway):
        mock_gateway.post_to_gateway.return_value = {"name": []}
        result = await controller.check_time(0, "18:00", "19:00")
        assert result.total == 0

    @pytest.mark.asyncio
    async def test_invalid_duration_makes_no_call(self, controller, mock_gateway):
        with pytest.raises(ValidationError):
            await controller.check_time(1, "14:00", "14:00")
        mock_gateway.post_to_gateway.assert_not_awaited()


class TestCreatorsCheck:

    @pytest.mark.asyncio
    async def test_ranges_are_split(self, controller, mock_gateway):
        mock_gateway.post_to_gateway.return_value = CREATORS_RESPONSE

        result = await controller.check_creators(2, ["Asha", "Meera", "Asha"])

        payload = mock_gateway.post_to_gateway.await_args.args[0]
        assert payload["creators"] == ["Asha", "Meera"]
        assert payload["dateKey"] == "2026-01-05"
        assert [c.name for c in result.creators] == ["Asha", "Meera"]
        assert result.creators[0].available == ["12:00 am to 10:00 am", "6:00 pm to 11:59 pm"]
        assert result.creators[1].booked == []
        assert len(result.common_free) == 2

    @pytest.mark.asyncio
    async def test_requires_a_creator(self, controller):
        with pytest.raises(ValidationError) as exc:
            await controller.check_creators(0, [])
        assert exc.value.message == "Select at least one creator"

    def test_missing_data_is_empty(self):
        assert CreatorsAvailability.from_response({"ok": True}) == CreatorsAvailability()

    def test_split_ranges(self):
        assert split_ranges("a\n\n b ") == ["a", "b"]
        assert split_ranges(None) == []


class TestModes:

    @pytest.mark.asyncio
    async def test_switching_mode_clears_result(self, controller, mock_gateway, sample_roster):
        mock_gateway.post_to_gateway.return_value = {"name": sample_roster}
        await controller.check_time(1, "14:00", "16:00")
        assert controller.mode == SlotCheckMode.TIME

        controller.set_mode("creators")
        assert controller.result is None

        mock_gateway.post_to_gateway.return_value = CREATORS_RESPONSE
        await controller.check_creators(1, ["Asha"])
        assert controller.mode == SlotCheckMode.CREATORS
        assert isinstance(controller.result, CreatorsAvailability)


class TestLookups:

    @pytest.mark.asyncio
    async def test_config_is_cached(self, mock_gateway):
        mock_gateway.get_json.return_value = {"google_creators_script_url": "https://script.test/creators"}
        config = ClientConfig(mock_gateway)

        await config.load()
        await config.load()

        mock_gateway.get_json.assert_awaited_once_with("/api/config")

    @pytest.mark.asyncio
    async def test_failed_config_is_retried(self, mock_gateway):
        mock_gateway.get_json.side_effect = [NetworkError("down"), {"ok": True}]
        config = ClientConfig(mock_gateway)

        assert await config.load() is None
        assert await config.load() == {"ok": True}

    @pytest.mark.asyncio
    async def test_require_missing_key(self, mock_gateway):
        mock_gateway.get_json.return_value = {}
        with pytest.raises(ValidationError):
            await ClientConfig(mock_gateway).require("google_brandip_script_url")

    @pytest.mark.asyncio
    async def test_brand_list(self, mock_gateway, mock_config):
        mock_gateway.get_json.return_value = {"ok": True, "names": ["Nike", "Puma"]}
        lookups = LookupClient(mock_gateway, mock_config)

        assert await lookups.get_brand_ip_names("Brand") == ["Nike", "Puma"]
        mock_gateway.get_json.assert_awaited_once_with(
            "https://script.test/brandip", params={"brandips": "Brand"}
        )

    @pytest.mark.asyncio
    async def test_unknown_list_type(self, mock_gateway, mock_config):
        with pytest.raises(ValidationError):
            await LookupClient(mock_gateway, mock_config).get_brand_ip_names("Client")

    @pytest.mark.asyncio
    async def test_creators_feed_slot_check(self, mock_gateway, creator_session):
        lookups = MagicMock()
        lookups.get_creators = AsyncMock(return_value=["Asha", "Meera"])
        controller = SlotCheckController(mock_gateway, creator_session, lookups=lookups)

        assert await controller.available_creators() == ["Asha", "Meera"]
