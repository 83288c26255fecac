"""
Test Configuration and Fixtures
Version: 2.0
"""

import os

# Settings are read at import time; configure integrations before any app import
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("N8N_WEBHOOK_URL", "https://n8n.test/webhook/booking")
os.environ.setdefault("APP_KEY", "test-app-key")
os.environ.setdefault("GOOGLE_AUTH_SCRIPT_URL", "https://script.test/auth")
os.environ.setdefault("GOOGLE_CREATORS_SCRIPT_URL", "https://script.test/creators")
os.environ.setdefault("GOOGLE_MYDAY_SCRIPT_URL", "https://script.test/myday")
os.environ.setdefault("GOOGLE_BRANDIP_SCRIPT_URL", "https://script.test/brandip")
os.environ.setdefault("GOOGLE_ATTENDANCE_SCRIPT_URL", "https://script.test/attendance")

from datetime import datetime
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from dateutil import tz

from services.session_store import Session


KOLKATA = tz.gettz("Asia/Kolkata")


# ============================================================================
# MOCK FIXTURES
# ============================================================================

@pytest.fixture
def redis_data() -> Dict[str, Any]:
    """Backing dict of mock_redis, exposed for assertions."""
    return {}


@pytest.fixture
def mock_redis(redis_data):
    """Mock Redis client backed by a dict."""
    redis = MagicMock()

    async def _get(key):
        return redis_data.get(key)

    async def _setex(key, ttl, value):
        redis_data[key] = value

    async def _set(key, value):
        redis_data[key] = value
        return True

    async def _delete(key):
        redis_data.pop(key, None)
        return 1

    redis.ping = AsyncMock(return_value=True)
    redis.get = AsyncMock(side_effect=_get)
    redis.set = AsyncMock(side_effect=_set)
    redis.setex = AsyncMock(side_effect=_setex)
    redis.delete = AsyncMock(side_effect=_delete)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def mock_gateway():
    """Mock GatewayClient."""
    gateway = MagicMock()
    gateway.post_to_gateway = AsyncMock()
    gateway.get_json = AsyncMock()
    gateway.post_json = AsyncMock()
    gateway.close = AsyncMock()
    gateway.read_timeout = 10.0
    return gateway


@pytest.fixture
def mock_config():
    """Mock ClientConfig returning the configured script URLs."""
    urls = {
        "google_creators_script_url": "https://script.test/creators",
        "google_myday_script_url": "https://script.test/myday",
        "google_brandip_script_url": "https://script.test/brandip",
        "google_attendance_script_url": "https://script.test/attendance",
    }
    config = MagicMock()
    config.load = AsyncMock(return_value=dict(urls, ok=True))
    config.get = AsyncMock(side_effect=lambda key: urls.get(key))
    config.require = AsyncMock(side_effect=lambda key: urls[key])
    return config


@pytest.fixture
def confirm_yes():
    return AsyncMock(return_value=True)


@pytest.fixture
def confirm_no():
    return AsyncMock(return_value=False)


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def fixed_now() -> datetime:
    """Saturday 3 Jan 2026, 10:00 in Kolkata."""
    return datetime(2026, 1, 3, 10, 0, tzinfo=KOLKATA)


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def creator_session() -> Session:
    return Session(email="asha@creativefuel.io", name="Asha", role="Creator")


@pytest.fixture
def dop_session() -> Session:
    return Session(email="ravi@creativefuel.io", name="Ravi", role="DOP")


@pytest.fixture
def sample_roster() -> List[str]:
    return ["Asha - Creator", "Ravi - DOP", "Meera - Creator", "Kabir - DOP"]


@pytest.fixture
def sample_rows() -> List[Dict[str, Any]]:
    """My Day rows in the three time encodings the scripts produce."""
    return [
        {
            "Booking ID": "BK-3",
            "Shoot Name": "Later Shoot",
            "Type": "Brand",
            "B_IP_Name": "Nike",
            "Date": "05/01/2026",
            "From Time": "9:00 am",
            "To Time": "11:00 am",
            "Creator": "Asha",
            "Location": "Studio A",
            "DOP": "Ravi - DOP",
            "Cast": "Asha - Creator",
        },
        {
            "Booking ID": "BK-2",
            "Shoot Name": "Evening Promo",
            "Type": "IP",
            "B_IP_Name": "Office Stories",
            "Date": "2026-01-03T00:00:00.000Z",
            "From Time": "1899-12-30t16:00:00.000z",
            "To Time": "1899-12-30t18:00:00.000z",
            "Creator": "Asha",
            "Location": "Studio B",
            "DOP": "Ravi - DOP",
            "Cast": "Asha - Creator, Meera - Creator",
        },
        {
            "Booking ID": "BK-1",
            "Shoot Name": "Morning Reel",
            "Type": "Brand",
            "B_IP_Name": "Puma",
            "Shoot Date": "03 Jan 26",
            "From Time": "Sat Dec 30 1899 11:00:00 GMT+0521 (India Standard Time)",
            "To Time": "Sat Dec 30 1899 13:00:00 GMT+0521 (India Standard Time)",
            "Creator": "Meera",
            "Location": "Rooftop",
            "DOP": "-",
            "Cast": "Asha - Creator",
        },
        {
            "ID": "BK-4",
            "Shoot Name": "Tomorrow Vlog",
            "Date": "04 Jan 26",
            "From Time": "2:00 pm",
            "To Time": "3:00 pm",
            "Creator": "Meera",
            "Location": "Cafe",
            "DOP": "Kabir - DOP",
            "Cast": "Meera - Creator",
        },
    ]
