import asyncio
import json

import pytest

from automation.identity import Identity, StaticIdentityDirectory
from driver import session as session_module
from driver.config import RunConfig
from driver.retry import RetryEvent
from driver.session import BrowserSession
from driver.structured_logging import AttemptEventLog, prepare_log_paths


def test_identity_directory_from_json(tmp_path):
    path = tmp_path / "identities.json"
    path.write_text(
        json.dumps(
            {
                "u1": {"email": "jane@example.test", "password": "s3cret"},
                "u2": {"email": "joe@example.test", "credential_secret": "hunter2"},
            }
        ),
        encoding="utf-8",
    )

    directory = StaticIdentityDirectory.from_json_file(path)

    assert len(directory) == 2
    assert directory.resolve("u1").credential_secret == "s3cret"
    assert directory.resolve("u2").credential_secret == "hunter2"
    assert directory.resolve("u3") is None


def test_identity_directory_rejects_incomplete_entries(tmp_path):
    path = tmp_path / "identities.json"
    path.write_text(json.dumps({"u1": {"email": "jane@example.test"}}), encoding="utf-8")

    with pytest.raises(ValueError, match="u1"):
        StaticIdentityDirectory.from_json_file(path)


def test_identity_repr_hides_secret():
    identity = Identity("u1", "jane@example.test", "s3cret")
    assert "s3cret" not in repr(identity)


def test_event_log_writes_sequenced_jsonl(tmp_path):
    log = AttemptEventLog("rec1", prepare_log_paths("rec1", tmp_path))
    log.stage("open-session")
    log.retry(RetryEvent("click: #go", 1, 3, error="boom", delay_s=2.0))
    log.capture("error_screenshot", tmp_path / "shot.png")
    log.close()
    log.stage("ignored-after-close")

    lines = [json.loads(line) for line in (tmp_path / "rec1" / "events.jsonl").read_text().splitlines()]

    assert [entry["seq"] for entry in lines] == [1, 2, 3]
    assert [entry["kind"] for entry in lines] == ["stage", "retry", "capture"]
    assert lines[1]["delay_s"] == 2.0
    assert all(entry["attempt_id"] == "rec1" for entry in lines)


class _Closable:
    def __init__(self, calls, label, fail=False):
        self._calls = calls
        self._label = label
        self._fail = fail

    async def close(self):
        self._calls.append(self._label)
        if self._fail:
            raise RuntimeError(f"{self._label} already gone")

    async def stop(self):
        self._calls.append(self._label)


def test_browser_session_close_is_idempotent_and_tolerant():
    calls = []
    session = BrowserSession(
        _Closable(calls, "playwright"),
        _Closable(calls, "browser"),
        _Closable(calls, "context", fail=True),
    )

    async def scenario():
        await session.close()
        await session.close()

    asyncio.run(scenario())

    assert calls == ["context", "browser", "playwright"]
    assert session.closed
    assert session.pages() == []


class _Chromium:
    def __init__(self, browser=None, error=None):
        self._browser = browser
        self._error = error

    async def launch(self, **kwargs):
        if self._error is not None:
            raise self._error
        return self._browser


class _Driver:
    def __init__(self, calls, chromium):
        self._calls = calls
        self.chromium = chromium

    async def stop(self):
        self._calls.append("playwright")


class _Starter:
    def __init__(self, driver):
        self._driver = driver

    async def start(self):
        return self._driver


class _Browser(_Closable):
    async def new_context(self, **kwargs):
        raise asyncio.CancelledError()


def test_cancelled_launch_stops_driver(monkeypatch):
    calls = []
    driver = _Driver(calls, _Chromium(error=asyncio.CancelledError()))
    monkeypatch.setattr(session_module, "async_playwright", lambda: _Starter(driver))

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(BrowserSession.launch(RunConfig()))

    assert calls == ["playwright"]


def test_cancelled_context_creation_closes_browser(monkeypatch):
    calls = []
    driver = _Driver(calls, _Chromium(browser=_Browser(calls, "browser")))
    monkeypatch.setattr(session_module, "async_playwright", lambda: _Starter(driver))

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(BrowserSession.launch(RunConfig()))

    assert calls == ["browser", "playwright"]
