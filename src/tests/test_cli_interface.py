from __future__ import annotations

import logging
import runpy
from pathlib import Path

import pytest
from typer.testing import CliRunner

from vsixportal import cli
from vsixportal.exceptions import ResolutionError
from vsixportal.models import DownloadSummary, ExtensionSpec, ReleaseReference
from vsixportal.platforms import SERVER_ARCHES, SERVER_PLATFORMS

runner = CliRunner()


class _ManagerStub:
    instances: list[_ManagerStub] = []

    def __init__(
        self,
        download_dir: str = "",
        cached: bool = True,
        summary: DownloadSummary | None = None,
    ) -> None:
        self.download_dir = download_dir
        self.cached = cached
        self.summary = summary or DownloadSummary()
        self.specs: list[ExtensionSpec] = []
        _ManagerStub.instances.append(self)

    def download_all(self, specs) -> DownloadSummary:
        self.specs = list(specs)
        for spec in self.specs:
            self.summary.downloaded.append(spec.name)
        return self.summary


@pytest.fixture
def manager_stub(monkeypatch: pytest.MonkeyPatch) -> type[_ManagerStub]:
    _ManagerStub.instances = []
    monkeypatch.setattr(cli, "ExtensionDownloadManager", _ManagerStub)
    return _ManagerStub


def test_cli_help_shows_commands() -> None:
    result = runner.invoke(cli.app, ["--help"])

    assert result.exit_code == 0
    assert "extension" in result.output
    assert "server" in result.output
    assert "--log-level" in result.output


def test_extension_help_shows_options() -> None:
    result = runner.invoke(cli.app, ["extension", "--help"])

    assert result.exit_code == 0
    assert "--extensions" in result.output
    assert "--download-dir" in result.output
    assert "--no-cached" in result.output


def test_version_flag_prints_version_and_user_agent() -> None:
    result = runner.invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert "vsixportal" in result.output
    assert "User-Agent: Offline VSIX/" in result.output


def test_extension_passes_parsed_specifiers_to_manager(
    manager_stub: type[_ManagerStub], tmp_path: Path
) -> None:
    listing = tmp_path / "extensions.txt"
    listing.write_text("ms-python.python@2024.1.0\n", encoding="utf-8")

    result = runner.invoke(
        cli.app,
        [
            "extension",
            "--extensions",
            "redhat.vscode-yaml=linux-x64",
            "--extensions",
            str(listing),
            "--download-dir",
            str(tmp_path / "vsix"),
            "--no-cached",
        ],
    )

    assert result.exit_code == 0, result.output
    manager = manager_stub.instances[0]
    assert manager.download_dir == str(tmp_path / "vsix")
    assert manager.cached is False
    assert [spec.name for spec in manager.specs] == [
        "ms-python.python@2024.1.0",
        "redhat.vscode-yaml=linux-x64",
    ]
    assert "2 downloaded, 0 skipped, 0 failed" in result.output


def test_extension_exits_non_zero_when_any_download_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    summary = DownloadSummary(skipped=["pub.ok"], failed=[("pub.bad", "HTTP 404")])

    def _factory(download_dir: str, cached: bool) -> _ManagerStub:
        stub = _ManagerStub(download_dir, cached, summary=summary)
        stub.download_all = lambda specs: summary  # type: ignore[method-assign]
        return stub

    monkeypatch.setattr(cli, "ExtensionDownloadManager", _factory)

    result = runner.invoke(cli.app, ["extension", "--extensions", "pub.bad"])

    assert result.exit_code == 1
    assert "failed: pub.bad: HTTP 404" in result.output
    assert "0 downloaded, 1 skipped, 1 failed" in result.output


def test_extension_unreadable_listing_exits_cleanly(
    manager_stub: type[_ManagerStub],
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    broken = tmp_path / "extensions.json"
    broken.write_text("[{ not json", encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        result = runner.invoke(cli.app, ["extension", "--extensions", str(broken)])

    assert result.exit_code == 1
    assert manager_stub.instances == []
    assert any("parse json failed" in record.message for record in caplog.records)


def test_extension_requires_extensions_option() -> None:
    result = runner.invoke(cli.app, ["extension"])

    assert result.exit_code != 0


def test_invalid_log_level_is_rejected(manager_stub: type[_ManagerStub]) -> None:
    result = runner.invoke(
        cli.app, ["--log-level", "chatty", "extension", "--extensions", "pub.pkg"]
    )

    assert result.exit_code != 0
    assert manager_stub.instances == []


def test_server_forwards_choices(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def _download_server(**kwargs) -> ReleaseReference:
        captured.update(kwargs)
        return ReleaseReference(commit="abc123", platform="win32", arch="arm64")

    monkeypatch.setattr(cli, "download_server", _download_server)

    result = runner.invoke(
        cli.app,
        [
            "server",
            "--platform",
            "win32",
            "--arch",
            "arm64",
            "--commit",
            "abc123",
            "--output-dir",
            "/srv/vscode",
        ],
    )

    assert result.exit_code == 0, result.output
    assert captured == {
        "target_platform": "win32",
        "arch": "arm64",
        "commit": "abc123",
        "output_dir": "/srv/vscode",
    }
    assert "vscode server abc123 (win32-arm64)" in result.output


def test_server_defaults_to_host_platform(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def _download_server(**kwargs) -> ReleaseReference:
        captured.update(kwargs)
        return ReleaseReference(commit="abc123", platform="linux", arch="x64")

    monkeypatch.setattr(cli, "download_server", _download_server)

    result = runner.invoke(cli.app, ["server"])

    assert result.exit_code == 0, result.output
    assert captured["target_platform"] is None
    assert captured["arch"] is None
    assert captured["commit"] is None
    assert captured["output_dir"] == "./"


def test_server_rejects_unknown_platform() -> None:
    result = runner.invoke(cli.app, ["server", "--platform", "solaris"])

    assert result.exit_code != 0


def test_server_failure_exits_cleanly(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    def _download_server(**kwargs) -> ReleaseReference:
        raise ResolutionError("query vscode server commit id failed")

    monkeypatch.setattr(cli, "download_server", _download_server)

    with caplog.at_level(logging.ERROR):
        result = runner.invoke(cli.app, ["server"])

    assert result.exit_code == 1
    assert any("commit id failed" in record.message for record in caplog.records)


def test_main_module_entrypoint(monkeypatch: pytest.MonkeyPatch) -> None:
    called: list[bool] = []
    monkeypatch.setattr(cli, "main", lambda: called.append(True))

    runpy.run_module("vsixportal", run_name="__main__", alter_sys=False)

    assert called == [True]


def test_server_choices_match_update_service_names() -> None:
    assert tuple(item.value for item in cli.ServerPlatform) == SERVER_PLATFORMS
    assert tuple(item.value for item in cli.ServerArch) == SERVER_ARCHES
