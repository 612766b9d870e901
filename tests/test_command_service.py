"""Tests for CommandService: creation, polling, resolution and broadcasts."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from rcon_server.dao.command_dao import GROUP_CANCEL_RESPONSE, CommandDAO, CommandFilters
from rcon_server.models.command import Command
from rcon_server.models.identity import Identity
from rcon_server.services.command_service import (
    FAIL_DEFAULT_RESPONSE,
    SKIP_DEFAULT_RESPONSE,
    CommandForbiddenError,
    CommandNotFoundError,
    CommandService,
    CommandValidationError,
    UnknownServerError,
)
from rcon_server.services.sweeper_service import LifecycleSweeper
from rcon_server.utils.cache import PendingCache
from tests.conftest import FakeClock

MASTER = Identity(kind="master")


def _server(name: str) -> Identity:
    return Identity(kind="server", server_name=name, network="default")


async def _create(service: CommandService, **fields: object) -> dict[str, object]:
    body: dict[str, object] = {
        "serverId": "lobby",
        "command": "say hello",
        "executionType": "INSTANT",
    }
    body.update(fields)
    result = await service.create_command(body)
    command = result["command"]
    assert isinstance(command, dict)
    return command


# --- validation ---


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"serverId": "lobby", "command": "say hi"},
        {"serverId": "lobby", "executionType": "INSTANT"},
        {"serverId": "lobby", "command": "say hi", "executionType": "LATER"},
        {"serverId": "lobby", "command": "tp Alice", "executionType": "REQUIRE_ONLINE"},
        {"serverId": "lobby", "command": "x", "executionType": "INSTANT", "expiryHours": -1},
        {"serverId": "lobby", "command": "x", "executionType": "INSTANT", "expiryHours": "2"},
    ],
)
def test_validate_rejects(command_service: CommandService, body: dict[str, object]) -> None:
    with pytest.raises(CommandValidationError):
        command_service.validate(body)


def test_validate_unknown_server(command_service: CommandService) -> None:
    with pytest.raises(UnknownServerError):
        command_service.validate(
            {"serverId": "nowhere", "command": "say hi", "executionType": "INSTANT"},
        )


# --- creation and polling ---


@pytest.mark.asyncio
async def test_create_sets_expiry_from_default(
    command_service: CommandService, clock: FakeClock,
) -> None:
    command = await _create(command_service)
    assert command["status"] == "PENDING"
    assert command["group_id"] is None
    assert command["created_at"] == clock.now.isoformat()
    assert command["expires_at"] == (clock.now + timedelta(hours=24)).isoformat()


@pytest.mark.asyncio
async def test_create_honours_explicit_expiry(
    command_service: CommandService, clock: FakeClock,
) -> None:
    command = await _create(command_service, expiryHours=0.5)
    assert command["expires_at"] == (clock.now + timedelta(minutes=30)).isoformat()
    zero = await _create(command_service, expiryHours=0)
    assert zero["expires_at"] == clock.now.isoformat()


@pytest.mark.asyncio
async def test_poll_returns_oldest_first_and_caches(
    command_service: CommandService, clock: FakeClock,
) -> None:
    first = await _create(command_service, command="say one")
    clock.advance(seconds=1)
    second = await _create(command_service, command="say two")

    commands, cached = await command_service.poll_pending("lobby")
    assert [c["id"] for c in commands] == [first["id"], second["id"]]
    assert cached is False

    _, cached = await command_service.poll_pending("lobby")
    assert cached is True


@pytest.mark.asyncio
async def test_create_invalidates_cached_poll(command_service: CommandService) -> None:
    await command_service.poll_pending("lobby")
    created = await _create(command_service)
    commands, cached = await command_service.poll_pending("lobby")
    assert cached is False
    assert [c["id"] for c in commands] == [created["id"]]


# --- resolution ---


@pytest.mark.asyncio
async def test_complete_then_second_report_is_noop(command_service: CommandService) -> None:
    command = await _create(command_service)
    first = await command_service.complete(_server("lobby"), str(command["id"]), "done")
    second = await command_service.fail(_server("lobby"), str(command["id"]), "boom")
    assert first == {"changed": True, "message": "Command marked as executed"}
    assert second == {"changed": False, "message": "Command already resolved"}

    stored = await command_service.get_command(str(command["id"]))
    assert stored["status"] == "EXECUTED"
    assert stored["response"] == "done"
    assert stored["executed_at"] is not None


@pytest.mark.asyncio
async def test_complete_removes_from_poll(command_service: CommandService) -> None:
    command = await _create(command_service)
    await command_service.poll_pending("lobby")
    await command_service.complete(MASTER, str(command["id"]))
    commands, cached = await command_service.poll_pending("lobby")
    assert commands == []
    assert cached is False


@pytest.mark.asyncio
async def test_fail_and_skip_default_responses(command_service: CommandService) -> None:
    failed = await _create(command_service)
    skipped = await _create(command_service)
    await command_service.fail(MASTER, str(failed["id"]))
    await command_service.skip(MASTER, str(skipped["id"]))
    assert (await command_service.get_command(str(failed["id"])))["response"] == (
        FAIL_DEFAULT_RESPONSE
    )
    assert (await command_service.get_command(str(skipped["id"])))["response"] == (
        SKIP_DEFAULT_RESPONSE
    )


@pytest.mark.asyncio
async def test_server_cannot_resolve_other_servers_command(
    command_service: CommandService,
) -> None:
    command = await _create(command_service, serverId="survival-1")
    with pytest.raises(CommandForbiddenError):
        await command_service.complete(_server("lobby"), str(command["id"]))
    stored = await command_service.get_command(str(command["id"]))
    assert stored["status"] == "PENDING"


@pytest.mark.asyncio
async def test_resolve_unknown_command(command_service: CommandService) -> None:
    with pytest.raises(CommandNotFoundError):
        await command_service.cancel(MASTER, "missing")


@pytest.mark.asyncio
async def test_cancel_terminal_is_noop(command_service: CommandService) -> None:
    command = await _create(command_service)
    await command_service.skip(MASTER, str(command["id"]))
    result = await command_service.cancel(MASTER, str(command["id"]))
    assert result["changed"] is False
    assert (await command_service.get_command(str(command["id"])))["status"] == "SKIPPED"


# --- broadcast ---


async def _broadcast(service: CommandService) -> tuple[str, dict[str, str]]:
    result = await service.create_command({
        "serverId": "lobby",
        "command": "tp Alice spawn",
        "executionType": "BROADCAST_ONLINE",
        "player": "Alice",
    })
    commands = result["commands"]
    return result["groupId"], {c["server_id"]: c["id"] for c in commands}


@pytest.mark.asyncio
async def test_broadcast_creates_one_sibling_per_network_server(
    command_service: CommandService,
) -> None:
    group_id, by_server = await _broadcast(command_service)
    assert set(by_server) == {"lobby", "skyblock-1", "survival-1"}
    siblings = await command_service.list_group(group_id)
    assert {s["group_id"] for s in siblings} == {group_id}
    assert {s["execution_type"] for s in siblings} == {"BROADCAST_ONLINE"}
    assert {s["player"] for s in siblings} == {"Alice"}


@pytest.mark.asyncio
async def test_broadcast_first_execution_cancels_siblings(
    command_service: CommandService,
) -> None:
    group_id, by_server = await _broadcast(command_service)
    for server in by_server:
        commands, _ = await command_service.poll_pending(server)
        assert len(commands) == 1

    result = await command_service.complete(
        _server("skyblock-1"), by_server["skyblock-1"], "teleported",
    )
    assert result["changed"] is True

    statuses = {s["server_id"]: s for s in await command_service.list_group(group_id)}
    assert statuses["skyblock-1"]["status"] == "EXECUTED"
    assert statuses["skyblock-1"]["response"] == "teleported"
    for server in ("lobby", "survival-1"):
        assert statuses[server]["status"] == "CANCELLED"
        assert statuses[server]["response"] == GROUP_CANCEL_RESPONSE
        commands, cached = await command_service.poll_pending(server)
        assert commands == []
        assert cached is False

    late = await command_service.complete(_server("lobby"), by_server["lobby"])
    assert late["changed"] is False


@pytest.mark.asyncio
async def test_broadcast_skip_does_not_cancel_siblings(
    command_service: CommandService,
) -> None:
    group_id, by_server = await _broadcast(command_service)
    await command_service.skip(_server("lobby"), by_server["lobby"])
    statuses = {s["server_id"]: s["status"] for s in await command_service.list_group(group_id)}
    assert statuses == {"lobby": "SKIPPED", "skyblock-1": "PENDING", "survival-1": "PENDING"}


@pytest.mark.asyncio
async def test_broadcast_single_server_network(command_service: CommandService) -> None:
    result = await command_service.create_command({
        "serverId": "creative-1",
        "command": "give Bob diamond",
        "executionType": "BROADCAST_ONLINE",
        "player": "Bob",
    })
    assert [c["server_id"] for c in result["commands"]] == ["creative-1"]


@pytest.mark.asyncio
async def test_list_group_unknown(command_service: CommandService) -> None:
    with pytest.raises(CommandNotFoundError):
        await command_service.list_group("nope")


# --- bulk ---


@pytest.mark.asyncio
async def test_bulk_reports_invalid_items_by_index(command_service: CommandService) -> None:
    result = await command_service.create_bulk([
        {"serverId": "lobby", "command": "say a", "executionType": "INSTANT"},
        {"serverId": "nowhere", "command": "say b", "executionType": "INSTANT"},
        "not an object",
        {"serverId": "skyblock-1", "command": "say c", "executionType": "INSTANT"},
    ])
    assert result["created"] == 2
    assert [e["index"] for e in result["errors"]] == [1, 2]
    lobby, _ = await command_service.poll_pending("lobby")
    skyblock, _ = await command_service.poll_pending("skyblock-1")
    assert len(lobby) == 1
    assert len(skyblock) == 1


@pytest.mark.asyncio
async def test_bulk_all_valid_has_no_errors_key(command_service: CommandService) -> None:
    result = await command_service.create_bulk([
        {"serverId": "lobby", "command": "say a", "executionType": "INSTANT"},
    ])
    assert result == {"created": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize("items", [[], None, {"a": 1}])
async def test_bulk_rejects_non_list(command_service: CommandService, items: object) -> None:
    with pytest.raises(CommandValidationError):
        await command_service.create_bulk(items)


@pytest.mark.asyncio
async def test_bulk_rejects_over_limit(command_service: CommandService) -> None:
    item = {"serverId": "lobby", "command": "say a", "executionType": "INSTANT"}
    with pytest.raises(CommandValidationError, match="Maximum 5"):
        await command_service.create_bulk([item] * 6)


# --- listing ---


@pytest.mark.asyncio
async def test_list_commands_newest_first_with_total(
    command_service: CommandService, clock: FakeClock,
) -> None:
    ids = []
    for _ in range(3):
        ids.append((await _create(command_service))["id"])
        clock.advance(seconds=1)
    result = await command_service.list_commands(CommandFilters(), limit=2)
    assert [c["id"] for c in result["commands"]] == [ids[2], ids[1]]
    assert result["total"] == 3
    assert result["limit"] == 2
    assert result["offset"] == 0


@pytest.mark.asyncio
async def test_list_commands_caps_limit(command_service: CommandService) -> None:
    result = await command_service.list_commands(CommandFilters(), limit=10_000)
    assert result["limit"] == 200
    default = await command_service.list_commands(CommandFilters())
    assert default["limit"] == 50


@pytest.mark.asyncio
async def test_list_commands_rejects_unknown_status(command_service: CommandService) -> None:
    with pytest.raises(CommandValidationError):
        await command_service.list_commands(CommandFilters(status="DONE"))


def test_command_to_dict_times_are_utc_iso() -> None:
    cmd = Command(
        id="x",
        server_id="lobby",
        command="say hi",
        execution_type="INSTANT",
        status="PENDING",
        created_at=datetime(2026, 1, 1, 8, 0),
        expires_at=datetime(2026, 1, 2, 8, 0),
    )
    data = CommandService.command_to_dict(cmd)
    assert data["created_at"] == "2026-01-01T08:00:00+00:00"
    assert data["executed_at"] is None
    assert set(data) == {
        "id", "server_id", "game_mode", "command", "player", "execution_type",
        "status", "response", "created_at", "executed_at", "expires_at", "group_id",
    }



# --- expiry bounds and lifecycle ---


@pytest.mark.parametrize("hours", [1e9, 8761, float("nan"), 10**400])
def test_validate_rejects_out_of_range_expiry(
    command_service: CommandService, hours: float,
) -> None:
    with pytest.raises(CommandValidationError, match="out of range"):
        command_service.validate({
            "serverId": "lobby",
            "command": "say hi",
            "executionType": "INSTANT",
            "expiryHours": hours,
        })


@pytest.mark.asyncio
async def test_bulk_out_of_range_expiry_does_not_abort_valid_items(
    command_service: CommandService,
) -> None:
    result = await command_service.create_bulk([
        {"serverId": "lobby", "command": "say a", "executionType": "INSTANT"},
        {
            "serverId": "lobby",
            "command": "say b",
            "executionType": "INSTANT",
            "expiryHours": 1e9,
        },
    ])
    assert result["created"] == 1
    assert result["errors"] == [{"index": 1, "error": "expiryHours is out of range"}]
    pending, _ = await command_service.poll_pending("lobby")
    assert [c["command"] for c in pending] == ["say a"]


@pytest.mark.asyncio
async def test_polled_list_mutation_does_not_leak_into_cache(
    command_service: CommandService,
) -> None:
    await _create(command_service)
    first, _ = await command_service.poll_pending("lobby")
    first[0]["status"] = "EXECUTED"
    first.clear()

    again, cached = await command_service.poll_pending("lobby")
    assert cached is True
    assert len(again) == 1
    assert again[0]["status"] == "PENDING"


@pytest.mark.asyncio
async def test_zero_expiry_command_is_swept_then_purged(
    command_service: CommandService,
    command_dao: CommandDAO,
    pending_cache: PendingCache,
    clock: FakeClock,
) -> None:
    """expiryHours=0: still polled until a sweep expires it, purged after the cutoff."""
    command = await _create(command_service, expiryHours=0)
    command_id = str(command["id"])
    sweeper = LifecycleSweeper(command_dao, pending_cache, clock=clock)

    clock.advance(minutes=1)
    overdue, _ = await command_service.poll_pending("lobby")
    assert [(c["id"], c["status"]) for c in overdue] == [(command_id, "PENDING")]

    swept = await sweeper.run_once()
    assert swept.expired == 1
    assert swept.purged == 0
    assert (await command_service.get_command(command_id))["status"] == "EXPIRED"
    pending, cached = await command_service.poll_pending("lobby")
    assert pending == []
    assert cached is False

    # Created Wednesday 12:00; Friday's cutoff is Thursday 00:00.
    clock.advance(days=2)
    purged = await sweeper.run_once()
    assert purged.purged == 1
    with pytest.raises(CommandNotFoundError):
        await command_service.get_command(command_id)
