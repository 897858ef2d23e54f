"""
Device registration tests.

Verifies:
- User-Agent parsing
- IP lookup degrades to Unknown on any failure
- Registration retries database failures with linear backoff
"""

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from balepos.models import Device, DeviceStatus
from balepos.services import device_service
from balepos.services.device_service import DeviceError


IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0"
)
ANDROID_TABLET_UA = "Mozilla/5.0 (Linux; Android 13; SM-X200) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"


@pytest.mark.parametrize(
    "ua,expected",
    [
        (IPHONE_UA, {"type": "Mobile", "os": "iOS", "browser": "Safari"}),
        (WINDOWS_UA, {"type": "Desktop", "os": "Windows", "browser": "Edge"}),
        (ANDROID_TABLET_UA, {"type": "Tablet", "os": "Android", "browser": "Chrome"}),
        (None, {"type": "Desktop", "os": "Unknown OS", "browser": "Unknown Browser"}),
    ],
)
def test_parse_user_agent(ua, expected):
    assert device_service.parse_user_agent(ua) == expected


@pytest.fixture
def ip_lookup(app):
    app.config['IP_LOOKUP_URL'] = 'https://ip.test/'
    yield
    app.config['IP_LOOKUP_URL'] = ''


class TestIpLookup:

    def test_success(self, db_session, ip_lookup):
        def handler(request):
            assert request.url.path == "/203.0.113.9"
            return httpx.Response(200, json={"success": True, "ip": "203.0.113.9", "city": "Cebu", "country": "Philippines"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert device_service.lookup_ip("203.0.113.9", client=client) == {
            "ip": "203.0.113.9", "location": "Cebu, Philippines",
        }

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"success": False}),
            httpx.Response(500),
            httpx.Response(200, text="not json"),
        ],
    )
    def test_failures_degrade(self, db_session, ip_lookup, response):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
        assert device_service.lookup_ip("203.0.113.9", client=client)["location"] == "Unknown"

    def test_timeout_degrades(self, db_session, ip_lookup):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert device_service.lookup_ip(None, client=client) == {"ip": "Unknown", "location": "Unknown"}


class TestRegistration:

    def test_new_device_is_pending(self, db_session):
        device = device_service.register_or_check("abc-123", user_agent=IPHONE_UA, ip="203.0.113.9")
        assert device.status == DeviceStatus.PENDING
        assert device.name == "iOS Mobile"
        assert device.location == "Unknown"
        assert device_service.is_approved("abc-123") is False

        again = device_service.register_or_check("abc-123")
        assert again.id == device.id
        assert db_session.query(Device).count() == 1

    def test_retries_then_fails(self, db_session, monkeypatch):
        calls = []
        sleeps = []

        def broken(*args):
            calls.append(args)
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(device_service, "_check_or_create", broken)
        with pytest.raises(DeviceError):
            device_service.register_or_check("abc-123", sleep=sleeps.append)

        assert len(calls) == device_service.REGISTER_ATTEMPTS
        assert sleeps == [1.0, 2.0]

    def test_recovers_on_retry(self, db_session, monkeypatch):
        real = device_service._check_or_create
        attempts = []

        def flaky(*args):
            attempts.append(1)
            if len(attempts) == 1:
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))
            return real(*args)

        monkeypatch.setattr(device_service, "_check_or_create", flaky)
        device = device_service.register_or_check("abc-123", sleep=lambda seconds: None)
        assert device.device_id == "abc-123"
        assert len(attempts) == 2

    def test_approve_and_rename(self, db_session):
        device = device_service.register_or_check("abc-123")
        device_service.set_status(device.id, DeviceStatus.APPROVED)
        assert device_service.is_approved("abc-123") is True

        assert device_service.rename_device(device.id, "Front Counter").name == "Front Counter"
        with pytest.raises(ValueError):
            device_service.set_status(device.id, "trusted")
