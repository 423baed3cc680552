from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from vsixportal import platforms


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="run slow tests that talk to the live marketplace",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: marks tests as slow")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if config.getoption("--slow"):
        return

    skip_slow = pytest.mark.skip(reason="need --slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class FakeResponse:
    """Just enough of ``requests.Response`` for the download and query paths."""

    def __init__(
        self,
        body: bytes = b"",
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        reason: str = "OK",
        json_data: Any = None,
        fail_after: int | None = None,
    ) -> None:
        self.body = body
        self.status_code = status_code
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.json_data = json_data
        self.fail_after = fail_after
        self.closed = False
        self.raw = SimpleNamespace(stream=self._stream)

    def _stream(self, amt: int, decode_content: bool = True):
        assert decode_content is False
        for index, start in enumerate(range(0, len(self.body), 4)):
            if self.fail_after is not None and index >= self.fail_after:
                raise requests.ConnectionError("connection reset by peer")
            yield self.body[start : start + 4]

    def json(self) -> Any:
        if self.json_data is None:
            raise ValueError("response is not JSON")
        return self.json_data

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Replays queued responses and records every request."""

    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[SimpleNamespace] = []

    def _next(self, method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        self.calls.append(SimpleNamespace(method=method, url=url, **kwargs))
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, kwargs)


@pytest.fixture
def fake_response() -> type[FakeResponse]:
    return FakeResponse


@pytest.fixture
def fake_session() -> type[FakeSession]:
    return FakeSession


@pytest.fixture(autouse=True)
def _default_hosts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VSIXPORTAL_MARKETPLACE_HOST", raising=False)
    monkeypatch.delenv("VSIXPORTAL_UPDATE_HOST", raising=False)


@pytest.fixture
def host(monkeypatch: pytest.MonkeyPatch):
    """Pretend to run on another operating system and machine."""

    def _set(system: str, machine: str, musl: bool = False) -> None:
        monkeypatch.setattr(platforms.platform, "system", lambda: system)
        monkeypatch.setattr(platforms.platform, "machine", lambda: machine)
        monkeypatch.setattr(platforms, "_is_musl_linux", lambda: musl)

    return _set


def _make_tgz(path: Path, members: dict[str, bytes], toplevel: str) -> Path:
    with tarfile.open(path, "w:gz") as archive:
        directory = tarfile.TarInfo(toplevel)
        directory.type = tarfile.DIRTYPE
        directory.mode = 0o755
        archive.addfile(directory)
        for name, data in members.items():
            info = tarfile.TarInfo(f"{toplevel}/{name}")
            info.size = len(data)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(data))
    return path


def _make_zip(path: Path, members: dict[str, bytes], mode: int = 0o644) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in members.items():
            info = zipfile.ZipInfo(name)
            info.external_attr = mode << 16
            archive.writestr(info, data)
    return path


@pytest.fixture
def make_tgz():
    return _make_tgz


@pytest.fixture
def make_zip():
    return _make_zip
