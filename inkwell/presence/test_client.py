"""
Tests for PresenceAgent against an in-memory transport.
"""

import asyncio
import json

import httpx
import pytest

from presence.client import AgentState, PresenceAgent
from presence.config import PresenceConfig
from presence.exceptions import TransportError


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = False

    async def send(self, data):
        if self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(json.loads(data))

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True

    def push(self, msg_type, data):
        self.incoming.put_nowait(json.dumps({"type": msg_type, "data": data}))

    def drop(self):
        self.incoming.put_nowait(ConnectionError("connection reset by peer"))


class FakeServer:
    """Transport factory; the first `failures` handshakes are refused."""

    def __init__(self, failures=0):
        self.failures = failures
        self.urls = []
        self.transports = []

    async def __call__(self, url):
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise TransportError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport


class GatedServer:
    """Transport factory whose handshakes stay open until their gate is set."""

    def __init__(self):
        self.gates = []
        self.transports = []

    async def __call__(self, url):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        transport = FakeTransport()
        self.transports.append(transport)
        return transport


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def settle(rounds=50):
    for _ in range(rounds):
        await asyncio.sleep(0)


def payload(user_id, is_online, last_active="2026-10-19T09:00:00Z"):
    return {
        "userId": str(user_id),
        "name": f"User {user_id}",
        "email": f"user{user_id}@example.com",
        "isOnline": is_online,
        "lastActive": last_active,
        "role": "customer",
    }


def make_agent(server, sleep=None, **kwargs):
    return PresenceAgent(
        "ws://testserver/ws/presence/",
        transport_factory=server,
        sleep=sleep or RecordingSleep(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_connect_attaches_user_id_and_requests_snapshot():
    server = FakeServer()
    agent = make_agent(server)

    await agent.connect(42)

    assert agent.state is AgentState.CONNECTED
    assert agent.is_connected
    assert server.urls == ["ws://testserver/ws/presence/?userId=42"]
    assert server.transports[0].sent == [{"type": "online_users_request"}]
    await agent.disconnect()


@pytest.mark.asyncio
async def test_connect_same_user_twice_is_noop():
    server = FakeServer()
    agent = make_agent(server)

    await agent.connect("42")
    await agent.connect(42)

    assert len(server.urls) == 1
    await agent.disconnect()


@pytest.mark.asyncio
async def test_connect_different_user_replaces_connection():
    server = FakeServer()
    agent = make_agent(server)

    await agent.connect("1")
    await agent.connect("2")

    assert server.transports[0].closed
    assert server.urls[-1].endswith("userId=2")
    assert agent.user_id == "2"
    assert agent.is_connected
    await agent.disconnect()


@pytest.mark.asyncio
async def test_backoff_gives_up_after_max_attempts():
    server = FakeServer(failures=100)
    sleep = RecordingSleep()
    agent = make_agent(server, sleep=sleep)

    await agent.connect("1")
    await settle()

    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert len(server.urls) == 6
    assert agent.state is AgentState.DISCONNECTED


@pytest.mark.asyncio
async def test_explicit_connect_after_giving_up_starts_over():
    server = FakeServer(failures=6)
    agent = make_agent(server, max_attempts=5)

    await agent.connect("1")
    await settle()
    assert agent.state is AgentState.DISCONNECTED

    await agent.connect("1")
    assert agent.is_connected
    assert agent.attempts == 0
    await agent.disconnect()


@pytest.mark.asyncio
async def test_lost_connection_reconnects_and_resets_attempts():
    server = FakeServer()
    sleep = RecordingSleep()
    agent = make_agent(server, sleep=sleep)

    await agent.connect("1")
    server.transports[0].drop()
    await settle()

    assert sleep.delays == [1.0]
    assert len(server.transports) == 2
    assert agent.is_connected
    assert agent.attempts == 0
    await agent.disconnect()


@pytest.mark.asyncio
async def test_recovers_after_transient_failures():
    server = FakeServer(failures=2)
    sleep = RecordingSleep()
    agent = make_agent(server, sleep=sleep, base_delay=0.5)

    await agent.connect("1")
    await settle()

    assert sleep.delays == [0.5, 1.0]
    assert agent.is_connected
    await agent.disconnect()


@pytest.mark.asyncio
async def test_user_initiated_disconnect_does_not_reconnect():
    server = FakeServer()
    agent = make_agent(server)

    await agent.connect("1")
    await agent.disconnect()
    await settle()

    assert server.transports[0].closed
    assert len(server.urls) == 1
    assert agent.state is AgentState.DISCONNECTED
    assert agent.user_id is None

    # Idempotent.
    await agent.disconnect()
    assert agent.state is AgentState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect():
    server = FakeServer(failures=1)
    gate = asyncio.Event()

    async def blocking_sleep(delay):
        await gate.wait()

    agent = make_agent(server, sleep=blocking_sleep)

    await agent.connect("1")
    assert agent.state is AgentState.CONNECTING

    await agent.disconnect()
    gate.set()
    await settle()

    assert len(server.urls) == 1
    assert agent.state is AgentState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnect_during_handshake_closes_the_older_socket():
    server = GatedServer()
    agent = make_agent(server)

    first = asyncio.ensure_future(agent.connect("A"))
    await settle()
    await agent.disconnect()
    second = asyncio.ensure_future(agent.connect("A"))
    await settle()
    assert len(server.gates) == 2

    for gate in server.gates:
        gate.set()
    await asyncio.gather(first, second)
    await settle()

    assert agent.is_connected
    assert [t.closed for t in server.transports].count(False) == 1

    await agent.disconnect()
    assert all(t.closed for t in server.transports)


@pytest.mark.asyncio
async def test_from_config_uses_presence_timings():
    config = PresenceConfig(
        heartbeat_interval_seconds=10,
        reconnect_base_delay_seconds=0.5,
        reconnect_max_attempts=3,
    )
    agent = PresenceAgent.from_config(
        "ws://testserver/ws/presence/", config, transport_factory=FakeServer()
    )

    assert agent.heartbeat_interval == 10
    assert agent.max_attempts == 3
    assert [agent.backoff_delay(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_status_change_is_last_received_wins():
    server = FakeServer()
    agent = make_agent(server)
    await agent.connect("1")
    transport = server.transports[0]

    transport.push("user_status_change", payload(7, True))
    transport.push("user_status_change", payload(7, False, "2026-10-19T09:05:00Z"))
    await settle()

    status = agent.get_status(7)
    assert status.is_online is False
    assert status.last_active.minute == 5
    await agent.disconnect()


@pytest.mark.asyncio
async def test_snapshot_applies_every_entry():
    server = FakeServer()
    agent = make_agent(server)
    await agent.connect("1")

    server.transports[0].push("online_users_update", [payload(1, True), payload(2, False)])
    await settle()

    assert set(agent.statuses) == {"1", "2"}
    assert agent.get_status("1").is_online
    assert not agent.get_status("2").is_online
    with pytest.raises(TypeError):
        agent.statuses["3"] = None
    await agent.disconnect()


@pytest.mark.asyncio
async def test_malformed_frames_are_ignored():
    server = FakeServer()
    agent = make_agent(server)
    await agent.connect("1")
    transport = server.transports[0]

    transport.incoming.put_nowait("not json")
    transport.push("user_status_change", {"name": "missing fields"})
    transport.push("error", {"message": "Unknown message type"})
    transport.push("user_status_change", payload(3, True))
    await settle()

    assert list(agent.statuses) == ["3"]
    assert agent.is_connected
    await agent.disconnect()


@pytest.mark.asyncio
async def test_subscribers_are_isolated_from_each_other():
    server = FakeServer()
    agent = make_agent(server)
    received = []

    def broken(event):
        raise RuntimeError("boom")

    agent.subscribe(broken)
    unsubscribe = agent.subscribe(received.append)
    await agent.connect("1")

    server.transports[0].push("user_status_change", payload(5, True))
    await settle()
    assert [event.user_id for event in received] == ["5"]

    unsubscribe()
    server.transports[0].push("user_status_change", payload(6, True))
    await settle()
    assert len(received) == 1
    await agent.disconnect()


@pytest.mark.asyncio
async def test_state_change_notifications():
    server = FakeServer()
    agent = make_agent(server)
    states = []
    agent.on_state_change(states.append)

    await agent.connect("1")
    await agent.disconnect()

    assert states == [AgentState.CONNECTING, AgentState.CONNECTED, AgentState.DISCONNECTED]


@pytest.mark.asyncio
async def test_heartbeat_only_when_connected():
    server = FakeServer()
    agent = make_agent(server)

    assert await agent.send_heartbeat() is False

    await agent.connect("1")
    assert await agent.send_heartbeat() is True
    assert server.transports[0].sent[-1] == {"type": "user_activity"}
    await agent.disconnect()


@pytest.mark.asyncio
async def test_run_heartbeats_uses_interval():
    server = FakeServer()
    delays = []

    async def sleep(delay):
        delays.append(delay)
        if len(delays) > 2:
            raise asyncio.CancelledError()

    agent = make_agent(server, sleep=sleep, heartbeat_interval=30.0)
    await agent.connect("1")

    with pytest.raises(asyncio.CancelledError):
        await agent.run_heartbeats()

    assert delays == [30.0, 30.0, 30.0]
    heartbeats = [frame for frame in server.transports[0].sent if frame["type"] == "user_activity"]
    assert len(heartbeats) == 2
    await agent.disconnect()


@pytest.mark.asyncio
async def test_start_and_stop():
    server = FakeServer()
    gate = asyncio.Event()

    async def sleep(delay):
        await gate.wait()

    agent = make_agent(server, sleep=sleep)
    await agent.start("1")
    assert agent.is_connected

    await agent.stop()
    assert agent.state is AgentState.DISCONNECTED
    assert server.transports[0].closed


@pytest.mark.asyncio
async def test_sign_out_calls_offline_endpoint():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"success": True})

    server = FakeServer()
    agent = make_agent(server)
    await agent.connect("9")

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://testserver"
    ) as http_client:
        assert await agent.sign_out(http_client, "access-token") is True

    assert agent.state is AgentState.DISCONNECTED
    assert requests[0].method == "PUT"
    assert requests[0].url.path == "/api/users/9/offline/"
    assert requests[0].headers["Authorization"] == "Bearer access-token"


@pytest.mark.asyncio
async def test_sign_out_failure_is_not_raised():
    def handler(request):
        return httpx.Response(500, json={"success": False})

    server = FakeServer()
    agent = make_agent(server)
    await agent.connect("9")

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://testserver"
    ) as http_client:
        assert await agent.sign_out(http_client, "access-token") is False

    assert agent.state is AgentState.DISCONNECTED


def test_backoff_delay():
    agent = PresenceAgent("ws://testserver/ws/presence/", base_delay=1.0)
    assert [agent.backoff_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 16.0]
