"""
Tests for the thermostat portal adapter and its session cycle
"""

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from conftest import thermostat_page

from nexus_gateway.adapters import (
    CachePolicy,
    CyclePhase,
    ResultStatus,
    SessionCookieJar,
    ThermostatAdapter,
    parse_locations,
)
from nexus_gateway.constants import PORTAL_BASE_URL

CREDS = {"username": "me@example.com", "password": "secret"}
DEVICES = [{"id": 101, "name": "Hall"}, {"id": 102}, {"id": 103, "name": "Loft"}]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakePortal:
    """Portal double: seed page, login form, a redirect chain and control pages."""

    def __init__(self):
        self.requests = []
        self.logins = 0
        self.redirect = True
        self.offline = False
        self.failing = set()
        self.slow = set()
        self.gate = None
        self.reached = asyncio.Event()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/portal/" and request.method == "GET":
            return httpx.Response(200, headers=[("set-cookie", "seed=abc; path=/")], text="<form/>")

        if path == "/portal/" and request.method == "POST":
            self.logins += 1
            if self.offline:
                raise httpx.ConnectError("portal unreachable", request=request)
            if not self.redirect:
                return httpx.Response(200, text="<form>Login failed</form>")
            return httpx.Response(
                302,
                headers=[
                    ("location", "/portal/hop1"),
                    ("set-cookie", ".ASPXAUTH=token; path=/; HttpOnly"),
                ],
            )

        if path == "/portal/hop1":
            return httpx.Response(302, headers=[("location", "/portal/hop2"), ("set-cookie", "seed=; path=/")])

        if path == "/portal/hop2":
            return httpx.Response(302, headers={"location": "/portal/hop3"})

        if path.startswith("/portal/Device/Control/"):
            device_id = int(path.rsplit("/", 1)[-1])
            self.reached.set()
            if self.gate is not None:
                await self.gate.wait()
            if device_id in self.slow:
                await asyncio.sleep(1)
            if device_id in self.failing:
                return httpx.Response(500, text="error")
            return httpx.Response(200, text=thermostat_page(temp=70 + device_id % 100))

        if path == "/portal/Location/GetLocationListData":
            return httpx.Response(
                200,
                json=[
                    {
                        "LocationID": 9,
                        "LocationName": "Home",
                        "Devices": [{"DeviceID": 101, "Name": "Hall"}, {"DeviceID": 102}],
                    }
                ],
            )

        return httpx.Response(404)

    def paths(self):
        return [request.url.path for request in self.requests]


@pytest.fixture
def portal():
    return FakePortal()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter(portal, clock):
    client = httpx.AsyncClient(transport=httpx.MockTransport(portal), base_url=PORTAL_BASE_URL)
    return ThermostatAdapter(
        client=client,
        policy=CachePolicy(freshness_seconds=30),
        device_timeout=0.2,
        clock=clock,
    )


class TestCookieJar:
    """Set-Cookie driven jar"""

    def test_set_and_expire(self):
        jar = SessionCookieJar()
        jar.update_from(
            httpx.Response(200, headers=[("set-cookie", "A=1; Path=/"), ("set-cookie", "B=2; HttpOnly")])
        )

        assert len(jar) == 2
        assert jar.get("A") == "1"
        assert jar.header() == "A=1; B=2"

        jar.update_from(httpx.Response(200, headers=[("set-cookie", "A=; expires=Thu, 01 Jan 1970 00:00:00 GMT")]))

        assert "A" not in jar
        assert jar.names() == ["B"]


class TestLogin:
    """Login handshake"""

    @pytest.mark.asyncio
    async def test_login_posts_form(self, adapter, portal):
        await adapter.fetch_all(DEVICES[:1], CREDS)

        post = next(r for r in portal.requests if r.method == "POST")
        form = parse_qs(post.content.decode())
        assert form["UserName"] == ["me@example.com"]
        assert form["Password"] == ["secret"]
        assert form["RememberMe"] == ["false"]
        assert "timeOffset" in form

    @pytest.mark.asyncio
    async def test_redirects_capped_at_two_hops(self, adapter, portal):
        await adapter.fetch_all(DEVICES[:1], CREDS)

        paths = portal.paths()
        assert "/portal/hop1" in paths
        assert "/portal/hop2" in paths
        assert "/portal/hop3" not in paths
        assert adapter.session.authenticated is True
        assert adapter.session.phase is CyclePhase.DONE

    @pytest.mark.asyncio
    async def test_login_without_redirect_fails_cycle(self, adapter, portal):
        portal.redirect = False

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.FAILED
        assert result.payload is None
        assert "login failed" in result.error
        assert adapter.session.authenticated is False
        assert adapter.session.phase is CyclePhase.FAILED
        assert not any(p.startswith("/portal/Device") for p in portal.paths())

    @pytest.mark.asyncio
    async def test_cookie_cleared_by_empty_value(self, adapter, portal):
        await adapter.fetch_all(DEVICES[:1], CREDS)

        device_request = next(r for r in portal.requests if "/Device/Control/" in r.url.path)
        cookie = device_request.headers["cookie"]
        assert ".ASPXAUTH=token" in cookie
        assert "seed=" not in cookie

    @pytest.mark.asyncio
    async def test_seed_cookie_sent_with_login(self, adapter, portal):
        await adapter.fetch_all(DEVICES[:1], CREDS)

        post = next(r for r in portal.requests if r.method == "POST")
        assert post.headers["cookie"] == "seed=abc"


class TestReadings:
    """Per-device fetch and shaping"""

    @pytest.mark.asyncio
    async def test_readings_shaped(self, adapter):
        result = await adapter.fetch_all(DEVICES[:1], CREDS)

        assert result.status is ResultStatus.FRESH
        reading = result.payload[0]
        assert reading.id == 101
        assert reading.name == "Hall"
        assert reading.currentTemp == 71
        assert reading.targetTemp == 68
        assert reading.humidity == 40
        assert reading.outdoorTemp == 55
        assert reading.mode == "Heat"
        assert reading.status == "Heating"

    @pytest.mark.asyncio
    async def test_one_failing_device_isolated(self, adapter, portal):
        portal.failing = {102}

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.FRESH
        assert len(result.payload) == 3
        assert [r.id for r in result.payload] == [101, 102, 103]
        assert result.payload[1].status == "Error"
        assert result.payload[1].currentTemp is None
        assert result.payload[1].name == "Thermostat 102"
        assert result.payload[0].currentTemp == 71
        assert result.payload[2].currentTemp == 73

    @pytest.mark.asyncio
    async def test_slow_device_times_out_to_placeholder(self, adapter, portal):
        portal.slow = {103}

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.payload[2].status == "Error"
        assert result.payload[0].status == "Heating"

    @pytest.mark.asyncio
    async def test_all_failed_without_cache_returns_placeholders(self, adapter, portal):
        portal.failing = {101, 102, 103}

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.success
        assert all(r.status == "Error" for r in result.payload)
        assert adapter.cached_result is None


class TestCaching:
    """Freshness window, stale fallback and generations"""

    @pytest.mark.asyncio
    async def test_single_login_within_freshness_window(self, adapter, portal, clock):
        first = await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 10
        second = await adapter.fetch_all(DEVICES, CREDS)

        assert first.status is ResultStatus.FRESH
        assert second.status is ResultStatus.CACHED
        assert second.cached
        assert second.payload == first.payload
        assert portal.logins == 1

    @pytest.mark.asyncio
    async def test_expired_cache_logs_in_again(self, adapter, portal, clock):
        await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 30

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.FRESH
        assert portal.logins == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_cycle(self, adapter, portal):
        results = await asyncio.gather(
            adapter.fetch_all(DEVICES, CREDS),
            adapter.fetch_all(DEVICES, CREDS),
            adapter.fetch_all(DEVICES, CREDS),
        )

        assert portal.logins == 1
        assert sorted(r.status.value for r in results) == ["cached", "cached", "fresh"]

    @pytest.mark.asyncio
    async def test_all_failed_serves_stale_cache(self, adapter, portal, clock):
        good = await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 60
        portal.failing = {101, 102, 103}

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.STALE
        assert result.stale
        assert result.payload == good.payload
        assert result.fetched_at == good.fetched_at
        assert adapter.cached_result.payload == good.payload

    @pytest.mark.asyncio
    async def test_failed_login_serves_stale_cache(self, adapter, portal, clock):
        good = await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 60
        portal.redirect = False

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.STALE
        assert result.payload == good.payload
        assert result.error

    @pytest.mark.asyncio
    async def test_unreachable_login_serves_stale_cache(self, adapter, portal, clock):
        good = await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 60
        portal.offline = True

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.STALE
        assert result.payload == good.payload
        assert "portal unreachable" in result.error
        assert adapter.cached_result.payload == good.payload

    @pytest.mark.asyncio
    async def test_unreachable_login_without_cache_fails(self, adapter, portal):
        portal.offline = True

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.FAILED
        assert result.payload is None
        assert result.error
        assert adapter.cached_result is None

    @pytest.mark.asyncio
    async def test_stale_disabled_by_policy(self, adapter, portal, clock):
        adapter.policy = CachePolicy(freshness_seconds=30, serve_stale=False)
        await adapter.fetch_all(DEVICES, CREDS)
        clock.now += 60
        portal.redirect = False

        result = await adapter.fetch_all(DEVICES, CREDS)

        assert result.status is ResultStatus.FAILED
        assert result.payload is None

    @pytest.mark.asyncio
    async def test_invalidate_forces_fresh_login(self, adapter, portal):
        await adapter.fetch_all(DEVICES, CREDS)
        before = adapter.generation

        adapter.invalidate()

        assert adapter.generation != before
        assert adapter.cached_result is None
        assert adapter.session is None

        result = await adapter.fetch_all(DEVICES, CREDS)
        assert result.status is ResultStatus.FRESH
        assert portal.logins == 2
        assert adapter.login_count == 1

    @pytest.mark.asyncio
    async def test_inflight_cycle_cannot_refill_new_generation(self, adapter, portal):
        portal.gate = asyncio.Event()

        task = asyncio.create_task(adapter.fetch_all(DEVICES[:1], CREDS))
        await portal.reached.wait()
        adapter.invalidate()
        portal.gate.set()
        result = await task

        assert result.status is ResultStatus.FRESH
        assert adapter.cached_result is None


class TestNotConfigured:
    """Short-circuits before any upstream traffic"""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, adapter, portal):
        result = await adapter.fetch_all(DEVICES, {"username": "me@example.com", "password": None})

        assert result.status is ResultStatus.NOT_CONFIGURED
        assert result.error == "Honeywell credentials not configured"
        assert portal.requests == []

    @pytest.mark.asyncio
    async def test_no_devices(self, adapter, portal):
        result = await adapter.fetch_all([], CREDS)

        assert result.status is ResultStatus.NOT_CONFIGURED
        assert portal.requests == []


class TestDiscovery:
    """Location list parsing"""

    @pytest.mark.asyncio
    async def test_discover_lists_devices(self, adapter, portal):
        devices = await adapter.discover(CREDS)

        assert [d["id"] for d in devices] == [101, 102]
        assert devices[0]["locationName"] == "Home"
        assert devices[1]["name"] == "Thermostat 102"
        assert adapter.cached_result is None

    @pytest.mark.asyncio
    async def test_discover_without_credentials(self, adapter, portal):
        assert await adapter.discover({}) == []
        assert portal.requests == []

    def test_parse_locations_falls_back_to_page_scrape(self):
        body = "<div data-x=\"DeviceID\": 555></div> {DeviceID: 777}"

        devices = parse_locations(body)

        assert [d["id"] for d in devices] == [555, 777]

    def test_parse_locations_ignores_non_list(self):
        assert parse_locations('{"error": "nope"}') == []
