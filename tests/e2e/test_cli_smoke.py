"""End-to-end CLI smoke tests.

These tests run the real `sitehook` entry point in a subprocess:
- `--version` and `config show` against an explicit config file
- `serve` with a missing setting (must fail fast with a usage error)
- a full listener round trip: serve, `sitehook trigger`, then poll `/health`
"""

from __future__ import annotations

import json
import os
import shlex
import signal
import socket
import subprocess
import sys
import textwrap
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest
import yaml

pytestmark = pytest.mark.e2e

SRC_DIR = Path(__file__).resolve().parents[2] / "src"


@dataclass(frozen=True)
class CommandResult:
    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str


def _format_cmd(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in args)


def _cli_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    env = {
        key: value
        for key, value in os.environ.items()
        if not key.startswith("GIT_WEBHOOK_SERVICE_")
    }
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(SRC_DIR) + (os.pathsep + existing if existing else "")
    if extra:
        env.update(extra)
    return env


def run_cli(
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    timeout_seconds: float = 30.0,
) -> CommandResult:
    argv = [sys.executable, "-m", "sitehook", *args]
    print(f"+ {_format_cmd(argv)}", flush=True)
    completed = subprocess.run(
        argv,
        check=False,
        cwd=str(cwd),
        env=_cli_env(env),
        text=True,
        capture_output=True,
        timeout=timeout_seconds,
    )
    if completed.stdout:
        print(completed.stdout.rstrip(), flush=True)
    if completed.stderr:
        print(completed.stderr.rstrip(), file=sys.stderr, flush=True)
    return CommandResult(
        args=tuple(argv),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


def expect_ok(result: CommandResult) -> None:
    if result.returncode != 0:
        raise AssertionError(
            f"Command failed (rc={result.returncode}): {_format_cmd(result.args)}\n\n"
            f"stdout:\n{result.stdout}\n\nstderr:\n{result.stderr}"
        )


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _script(directory: Path, name: str, body: str) -> list[str]:
    path = directory / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return [sys.executable, str(path)]


def _wait_for(predicate, *, timeout_seconds: float = 30.0, interval: float = 0.2):
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        value = predicate()
        if value:
            return value
        time.sleep(interval)
    raise AssertionError("Timed out waiting for condition")


def _health(url: str) -> dict | None:
    try:
        response = httpx.get(url, timeout=2.0)
    except httpx.HTTPError:
        return None
    return response.json() if response.status_code == 200 else None


def test_version_and_config_show(tmp_path):
    config_path = tmp_path / "sitehook.yaml"
    config_path.write_text(
        yaml.safe_dump({"site": {"repository": "site", "generate_command": "hugo --minify"}}),
        encoding="utf-8",
    )

    version = run_cli(["--version"], cwd=tmp_path)
    expect_ok(version)
    assert version.stdout.strip()

    shown = run_cli(
        ["--config", str(config_path), "config", "show", "--format", "json"], cwd=tmp_path
    )
    expect_ok(shown)
    data = json.loads(shown.stdout)
    assert data["site"]["generate_command"] == ["hugo", "--minify"]
    assert (tmp_path / "sitehook.log").exists()


def test_serve_without_repository_fails_fast(tmp_path):
    result = run_cli(
        ["serve"],
        cwd=tmp_path,
        env={
            "GIT_WEBHOOK_SERVICE_LISTEN_IP": "127.0.0.1",
            "GIT_WEBHOOK_SERVICE_LISTEN_PORT": str(_free_port()),
        },
    )

    assert result.returncode == 2
    assert "GIT_WEBHOOK_SERVICE_REPOSITORY" in result.stderr


def test_listener_round_trip(tmp_path):
    repository = tmp_path / "repo"
    repository.mkdir()
    (repository / "revision.txt").write_text("A", encoding="utf-8")
    scripts = tmp_path / "scripts"
    scripts.mkdir()

    port = _free_port()
    config_path = tmp_path / "sitehook.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "service": {"listen_ip": "127.0.0.1", "listen_port": port},
                "site": {
                    "repository": str(repository),
                    "pull_command": _script(
                        scripts,
                        "pull.py",
                        """
                        from pathlib import Path
                        Path("revision.txt").write_text("B", encoding="utf-8")
                        """,
                    ),
                    "generate_command": _script(
                        scripts,
                        "generate.py",
                        """
                        from pathlib import Path
                        revision = Path("revision.txt").read_text(encoding="utf-8")
                        Path("public").mkdir()
                        Path("public/index.html").write_text(revision, encoding="utf-8")
                        """,
                    ),
                    "serve_command": _script(
                        scripts, "serve.py", "import time\ntime.sleep(120)\n"
                    ),
                    "stop_timeout_seconds": 5,
                },
            }
        ),
        encoding="utf-8",
    )

    health_url = f"http://127.0.0.1:{port}/health"
    listener = subprocess.Popen(
        [sys.executable, "-m", "sitehook", "--config", str(config_path), "serve"],
        cwd=str(tmp_path),
        env=_cli_env(),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        initial = _wait_for(lambda: _health(health_url))
        assert initial["server_running"] is True
        assert initial["last_run"] is None

        expect_ok(run_cli(["--config", str(config_path), "trigger"], cwd=tmp_path))

        def _finished():
            health = _health(health_url)
            if health and health["last_run"] and health["last_run"]["status"] != "running":
                return health
            return None

        final = _wait_for(_finished)
        assert final["status"] == "ok"
        assert final["server_running"] is True
        assert [step["step"] for step in final["last_run"]["steps"]] == [
            "pull",
            "stop",
            "clean",
            "generate",
            "start",
        ]
        assert (repository / "public" / "index.html").read_text(encoding="utf-8") == "B"

        status = run_cli(["--config", str(config_path), "status", "--json"], cwd=tmp_path)
        expect_ok(status)
        assert json.loads(status.stdout)["last_run"]["status"] == "succeeded"
    finally:
        listener.send_signal(signal.SIGTERM)
        try:
            listener.wait(timeout=15)
        except subprocess.TimeoutExpired:
            listener.kill()
            listener.wait()

    log_text = (tmp_path / "sitehook.log").read_text(encoding="utf-8")
    assert "Received incoming git webhook" in log_text
    assert "Stopped site server on shutdown." in log_text
