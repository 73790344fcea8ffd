from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from auditcord import main
from auditcord.audit.log_emitter import ConsoleLogSink
from auditcord.configuration.audit_settings import AuditSettings
from auditcord.datatypes.log_datatypes import LogType


@pytest.fixture(autouse=True)
def restore_env(monkeypatch):
    monkeypatch.delenv("AUDITCORD_HOME", raising=False)
    monkeypatch.setattr(main.os, "chdir", lambda path: None)
    yield


def test_resolve_base_dir_uses_env(monkeypatch, tmp_path):
    monkeypatch.setenv("AUDITCORD_HOME", str(tmp_path))
    assert main.resolve_base_dir() == tmp_path.resolve()


def test_resolve_base_dir_handles_frozen(monkeypatch, tmp_path):
    monkeypatch.setattr(main.sys, "frozen", True, raising=False)
    monkeypatch.setattr(main.sys, "argv", [str(tmp_path / "auditcord.exe")], raising=False)
    assert main.resolve_base_dir() == tmp_path.resolve()


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda *args, **kwargs: None)
    monkeypatch.setattr(main.os, "getenv", lambda key: None)
    with pytest.raises(SystemExit) as excinfo:
        main.load_environment()
    assert excinfo.value.code == 1


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda *args, **kwargs: None)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token-123")
    assert main.load_environment() == "token-123"


def test_build_intents_sets_required_flags(monkeypatch):
    class DummyIntents:
        def __init__(self):
            self.guilds = False
            self.members = False

        @classmethod
        def default(cls):
            return cls()

    monkeypatch.setattr(main, "discord", SimpleNamespace(Intents=DummyIntents))
    intents = main.build_intents()
    assert intents.guilds is True
    assert intents.members is True


def test_build_audit_runtime_wires_components():
    archive = MagicMock()
    settings = AuditSettings({"ignore_ttl_seconds": 4, "query_limit": 3, "disabled_log_types": ["member_nick_change"]})

    runtime = main.build_audit_runtime(settings, archive=archive, source=MagicMock())

    assert runtime.registry.default_ttl == 4.0
    assert runtime.gate.registry is runtime.registry
    assert runtime.correlator.query_limit == 3
    assert runtime.pipeline.correlator is runtime.correlator
    assert runtime.pipeline.gate is runtime.gate
    assert runtime.pipeline.emitter is runtime.emitter
    assert runtime.pipeline.disabled_log_types == frozenset({LogType.MEMBER_NICK_CHANGE})
    sinks = runtime.emitter.sinks
    assert isinstance(sinks[0], ConsoleLogSink)
    assert sinks[1] is archive


def test_build_audit_runtime_without_archive():
    runtime = main.build_audit_runtime(AuditSettings({}))

    assert runtime.archive is None
    assert len(runtime.emitter.sinks) == 1


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_bot_and_subsystems(monkeypatch):
    bot = SimpleNamespace(is_closed=lambda: False, close=AsyncMock())
    runtime = SimpleNamespace(emitter=SimpleNamespace(drain=AsyncMock()))
    close_db = AsyncMock()
    monkeypatch.setattr(main.db_connection, "close", close_db)

    await main.shutdown_runtime(bot, runtime)  # type: ignore[arg-type]

    bot.close.assert_awaited_once()
    runtime.emitter.drain.assert_awaited_once()
    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runtime_tolerates_bot_close_failure(monkeypatch):
    bot = SimpleNamespace(is_closed=lambda: False, close=AsyncMock(side_effect=RuntimeError("ws gone")))
    close_db = AsyncMock()
    monkeypatch.setattr(main.db_connection, "close", close_db)

    await main.shutdown_runtime(bot, None)  # type: ignore[arg-type]

    close_db.assert_awaited_once()


def test_main_handles_keyboard_interrupt(monkeypatch):
    def raise_interrupt(coro):
        coro.close()
        raise KeyboardInterrupt()

    monkeypatch.setattr(main.asyncio, "run", raise_interrupt)
    assert main.main() == 0


@pytest.mark.parametrize(
    "exit_code,expected",
    [
        (SystemExit(5), 5),
        (SystemExit(None), 1),
        (SystemExit("7"), 7),
        (SystemExit("bad"), 1),
    ],
)
def test_main_handles_system_exit(monkeypatch, exit_code, expected):
    def raiser(coro):
        coro.close()
        raise exit_code

    monkeypatch.setattr(main.asyncio, "run", raiser)
    assert main.main() == expected


def test_main_handles_generic_exception(monkeypatch):
    def raiser(coro):
        coro.close()
        raise RuntimeError("boom")

    monkeypatch.setattr(main.asyncio, "run", raiser)
    assert main.main() == 1


def test_main_returns_async_exit_code(monkeypatch):
    def runner(coro):
        coro.close()
        return 0

    monkeypatch.setattr(main.asyncio, "run", runner)
    assert main.main() == 0
