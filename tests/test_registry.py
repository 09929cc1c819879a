from unittest.mock import MagicMock

import pytest

from mcp_relay.errors import ConnectTimeoutError, UnknownSessionError, UnsupportedScriptError
from mcp_relay.registry import ProviderRegistry


def _registry(factory, observer=None, **kwargs) -> ProviderRegistry:
    return ProviderRegistry(observer, transport_factory=factory, **kwargs)


# ---------------------------------------------------------------------------
# connect
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_connect_activates_and_notifies(script, transport_factory):
    observer = MagicMock()
    registry = _registry(transport_factory(), observer)

    session_id = await registry.connect(script("weather.py"), "weather")

    assert session_id.startswith("mcp-")
    assert registry.active_id == session_id
    assert registry.active.tool_names == ["search"]

    (snapshot,), _ = observer.on_session_list_changed.call_args
    assert len(snapshot) == 1
    assert snapshot[0].name == "weather"
    assert snapshot[0].active and snapshot[0].connected


@pytest.mark.asyncio
async def test_connect_uses_default_name(script, transport_factory):
    registry = _registry(transport_factory())
    session_id = await registry.connect(script())
    assert registry.get(session_id).name == "New server"


@pytest.mark.asyncio
async def test_unsupported_script_never_spawns(script, transport_factory):
    factory = transport_factory()
    registry = _registry(factory)
    existing = await registry.connect(script("a.py"), "A")

    with pytest.raises(UnsupportedScriptError):
        await registry.connect(script("notes.txt"), "bad")

    assert len(factory.commands) == 1
    assert [info.id for info in registry.list()] == [existing]
    assert registry.active_id == existing


@pytest.mark.asyncio
async def test_timeout_leaves_existing_sessions(script, transport_factory, fake_transport):
    slow = fake_transport(open_delay=1.0)
    factory = transport_factory(fake_transport(), slow)
    registry = _registry(factory, connect_timeout=0.01)
    existing = await registry.connect(script("a.py"), "A")

    with pytest.raises(ConnectTimeoutError):
        await registry.connect(script("b.py"), "B")

    assert slow.closed
    assert len(registry) == 1
    assert registry.active_id == existing


# ---------------------------------------------------------------------------
# switch / remove
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_switch_active(script, transport_factory):
    observer = MagicMock()
    registry = _registry(transport_factory(), observer)
    a = await registry.connect(script("a.py"), "A")
    b = await registry.connect(script("b.py"), "B")
    assert registry.active_id == b

    await registry.switch_active(a)

    assert registry.active_id == a
    assert observer.on_session_list_changed.call_count == 3


@pytest.mark.asyncio
async def test_switch_unknown_raises(transport_factory):
    registry = _registry(transport_factory())
    with pytest.raises(UnknownSessionError):
        await registry.switch_active("mcp-missing")


@pytest.mark.asyncio
async def test_remove_active_falls_back_to_remaining(script, transport_factory):
    registry = _registry(transport_factory())
    a = await registry.connect(script("a.py"), "A")
    b = await registry.connect(script("b.py"), "B")
    await registry.switch_active(a)

    new_active = await registry.remove(a)

    assert new_active == b
    assert registry.active_id == b
    assert a not in registry


@pytest.mark.asyncio
async def test_remove_last_session_clears_active(script, transport_factory):
    factory = transport_factory()
    registry = _registry(factory)
    a = await registry.connect(script("a.py"), "A")

    assert await registry.remove(a) is None
    assert registry.active_id is None
    assert registry.active is None
    assert registry.list() == []
    assert factory.created[0].closed


@pytest.mark.asyncio
async def test_remove_inactive_keeps_active(script, transport_factory):
    registry = _registry(transport_factory())
    a = await registry.connect(script("a.py"), "A")
    b = await registry.connect(script("b.py"), "B")

    await registry.remove(a)

    assert registry.active_id == b


@pytest.mark.asyncio
async def test_remove_swallows_close_errors(script, transport_factory, fake_transport):
    broken = fake_transport(close_error=RuntimeError("pipe closed"))
    observer = MagicMock()
    registry = _registry(transport_factory(broken), observer)
    a = await registry.connect(script("a.py"), "A")

    await registry.remove(a)

    assert len(registry) == 0
    observer.on_session_list_changed.assert_called_with([])


@pytest.mark.asyncio
async def test_remove_unknown_raises(transport_factory):
    registry = _registry(transport_factory())
    with pytest.raises(UnknownSessionError, match="mcp-missing"):
        await registry.remove("mcp-missing")


# ---------------------------------------------------------------------------
# list / aclose
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_is_a_pure_read(script, transport_factory):
    observer = MagicMock()
    registry = _registry(transport_factory(), observer)
    path = script("a.py")
    a = await registry.connect(path, "A")
    calls = observer.on_session_list_changed.call_count

    rows = registry.list()

    assert [(r.id, r.name, r.path, r.active, r.connected) for r in rows] == [
        (a, "A", path, True, True)
    ]
    assert observer.on_session_list_changed.call_count == calls


@pytest.mark.asyncio
async def test_aclose_closes_everything(script, transport_factory):
    factory = transport_factory()
    registry = _registry(factory)
    await registry.connect(script("a.py"), "A")
    await registry.connect(script("b.py"), "B")

    await registry.aclose()

    assert all(t.closed for t in factory.created)
    assert registry.active_id is None
