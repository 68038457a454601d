# tests/test_recipes.py
from __future__ import annotations

import json
import shutil
import subprocess
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from stringr.errors import RecipeError
from stringr.recipes import (
    CacheRecipe,
    CacheStore,
    DockerRecipe,
    HttpRecipe,
    SlackRecipe,
    default_registry,
    docker_command,
)
from stringr.recipes import docker as docker_module
from stringr.recipes.base import split_list
from stringr.recipes.http import parse_headers
from stringr.recipes.slack import build_payload


def test_default_registry_names():
    assert default_registry().names() == ["cache", "docker", "http", "slack"]
    assert "docker" in default_registry()
    assert "kubernetes" not in default_registry()


def test_split_list():
    assert split_list(" a, b,,c ") == ["a", "b", "c"]
    assert split_list(None) == []


# ----------------------------------------------------------------------
# docker
# ----------------------------------------------------------------------

def test_docker_minimal_command():
    assert docker_command({"image": "alpine:3"}) == ["docker", "run", "--rm", "alpine:3"]


def test_docker_full_command():
    cmd = docker_command(
        {
            "image": "python:3.12",
            "command": "pytest -q",
            "working_dir": "/app",
            "pull": "always",
            "rm": "false",
            "volumes": "/src:/app, /cache:/root/.cache",
            "ports": "8080:80",
            "network": "host",
            "user": "1000:1000",
        }
    )
    assert cmd == [
        "docker", "run",
        "--pull", "always",
        "-w", "/app",
        "--user", "1000:1000",
        "--network", "host",
        "-v", "/src:/app",
        "-v", "/cache:/root/.cache",
        "-p", "8080:80",
        "python:3.12",
        "sh", "-c", "pytest -q",
    ]


def test_docker_requires_image():
    with pytest.raises(RecipeError) as exc:
        docker_command({})
    assert exc.value.kind == "MissingDockerImage"


def test_docker_failure(monkeypatch, log):
    def fake_run(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 125, stdout=b"Unable to find image\n")

    monkeypatch.setattr(docker_module.subprocess, "run", fake_run)
    with pytest.raises(RecipeError) as exc:
        DockerRecipe().run({"image": "nope"}, log)
    assert exc.value.kind == "DockerCommandFailed"
    assert exc.value.details["exit_code"] == 125
    text = log.read()
    assert "Unable to find image" in text
    assert "exit code 125" in text


def test_docker_success(monkeypatch, log):
    calls = []

    def fake_run(argv, **kwargs):
        calls.append(argv)
        return subprocess.CompletedProcess(argv, 0, stdout=b"hi\n")

    monkeypatch.setattr(docker_module.subprocess, "run", fake_run)
    DockerRecipe().run({"image": "alpine", "command": "echo hi"}, log)
    assert calls[0][-3:] == ["sh", "-c", "echo hi"]
    assert "Docker container completed successfully" in log.read()


# ----------------------------------------------------------------------
# cache
# ----------------------------------------------------------------------

@pytest.fixture
def workspace(tmp_path, monkeypatch):
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


def test_cache_round_trip(workspace, tmp_path, log):
    cache_dir = tmp_path / "cache"
    (workspace / "deps").mkdir()
    (workspace / "deps" / "lib.txt").write_text("payload")
    (workspace / "deps" / "__pycache__").mkdir()
    (workspace / "deps" / "__pycache__" / "x.pyc").write_bytes(b"\0")

    params = {"action": "save", "key": "deps-v1", "paths": "deps", "cache_dir": str(cache_dir)}
    CacheRecipe().run(params, log)

    assert (cache_dir / "deps-v1.tar.gz").exists()
    manifest = json.loads((cache_dir / "deps-v1.manifest.json").read_text())
    assert manifest["key"] == "deps-v1"
    assert manifest["files"] == 1

    shutil.rmtree(workspace / "deps")

    CacheRecipe().run(dict(params, action="restore"), log)
    assert (workspace / "deps" / "lib.txt").read_text() == "payload"
    assert not (workspace / "deps" / "__pycache__").exists()
    assert "Cache restored successfully" in log.read()


def test_cache_miss_is_success(workspace, tmp_path, log):
    CacheRecipe().run(
        {"action": "restore", "key": "missing", "paths": "x", "cache_dir": str(tmp_path / "c")},
        log,
    )
    assert "Cache miss" in log.read()


def test_cache_save_skips_missing_paths(workspace, tmp_path, log):
    cache_dir = tmp_path / "c"
    (workspace / "present.txt").write_text("1")
    CacheRecipe().run(
        {"action": "save", "key": "k", "paths": "present.txt, absent", "cache_dir": str(cache_dir)},
        log,
    )
    text = log.read()
    assert "Warning: path absent does not exist, skipping" in text
    assert (cache_dir / "k.tar.gz").exists()


def test_cache_save_nothing_to_do(workspace, tmp_path, log):
    cache_dir = tmp_path / "c"
    CacheRecipe().run({"action": "save", "key": "k", "paths": "absent", "cache_dir": str(cache_dir)}, log)
    assert "No valid paths to cache" in log.read()
    assert not cache_dir.exists()


def test_cache_invalid_action(workspace, tmp_path, log):
    with pytest.raises(RecipeError) as exc:
        CacheRecipe().run({"action": "purge", "key": "k", "paths": "x", "cache_dir": str(tmp_path)}, log)
    assert exc.value.kind == "InvalidCacheAction"


@pytest.mark.parametrize("missing, kind", [("action", "MissingCacheAction"), ("key", "MissingCacheKey")])
def test_cache_required_params(missing, kind, log):
    params = {"action": "save", "key": "k", "paths": "x"}
    del params[missing]
    with pytest.raises(RecipeError) as exc:
        CacheRecipe().run(params, log)
    assert exc.value.kind == kind


def test_cache_corrupt_archive(workspace, tmp_path, log):
    store = CacheStore(tmp_path / "c")
    store.root.mkdir(parents=True)
    store.artifact_path("bad").write_bytes(b"not a tarball")
    with pytest.raises(RecipeError) as exc:
        store.restore("bad")
    assert exc.value.kind == "CacheRestoreFailed"


# ----------------------------------------------------------------------
# local HTTP server for http / slack
# ----------------------------------------------------------------------

class _Handler(BaseHTTPRequestHandler):
    def log_message(self, *args):
        pass

    def _reply(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append(
            {"method": self.command, "path": self.path, "headers": self.headers, "body": body}
        )
        status = 500 if self.path.startswith("/fail") else 200
        payload = b"pong" if self.path.startswith("/ping") else b"server error" if status == 500 else b"ok"
        self.send_response(status)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = do_POST = do_PUT = do_DELETE = _reply


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.requests = []
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield httpd, f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_parse_headers():
    assert parse_headers("Content-Type: application/json, X-Token: a:b") == {
        "Content-Type": "application/json",
        "X-Token": "a:b",
    }
    with pytest.raises(RecipeError):
        parse_headers("no-colon")


def test_http_get(server, log):
    httpd, base = server
    HttpRecipe().run({"url": f"{base}/ping"}, log)
    text = log.read()
    assert f"HTTP GET {base}/ping" in text
    assert "pong" in text
    assert "HTTP request completed successfully" in text
    assert httpd.requests[0]["method"] == "GET"


def test_http_post_with_headers_and_body(server, log):
    httpd, base = server
    HttpRecipe().run(
        {
            "url": f"{base}/hook",
            "method": "post",
            "headers": "Content-Type: application/json, X-Trace: 42",
            "body": '{"a": 1}',
        },
        log,
    )
    req = httpd.requests[0]
    assert req["method"] == "POST"
    assert req["body"] == b'{"a": 1}'
    assert req["headers"]["X-Trace"] == "42"


def test_http_body_file_and_output(server, tmp_path, log):
    httpd, base = server
    body = tmp_path / "body.json"
    body.write_text("from-file")
    out = tmp_path / "resp" / "ping.txt"
    HttpRecipe().run(
        {"url": f"{base}/ping", "method": "PUT", "body_file": str(body), "output": str(out)},
        log,
    )
    assert httpd.requests[0]["body"] == b"from-file"
    assert out.read_bytes() == b"pong"
    assert f"Saving response to: {out}" in log.read()


def test_http_error_status_fails(server, log):
    _, base = server
    with pytest.raises(RecipeError) as exc:
        HttpRecipe().run({"url": f"{base}/fail"}, log)
    assert exc.value.kind == "HttpRequestFailed"
    assert exc.value.details["status"] == 500


def test_http_error_status_tolerated(server, log):
    _, base = server
    HttpRecipe().run({"url": f"{base}/fail", "fail_on_error": "false"}, log)
    assert "HTTP 500" in log.read()


def test_http_connection_refused(log):
    with pytest.raises(RecipeError) as exc:
        HttpRecipe().run({"url": "http://127.0.0.1:9/", "timeout": "2"}, log)
    assert exc.value.kind == "HttpRequestFailed"


def test_http_requires_url(log):
    with pytest.raises(RecipeError) as exc:
        HttpRecipe().run({}, log)
    assert exc.value.kind == "MissingHttpUrl"


def test_http_invalid_timeout(log):
    with pytest.raises(RecipeError):
        HttpRecipe().run({"url": "http://127.0.0.1/", "timeout": "soon"}, log)


def test_slack_payload():
    assert build_payload({"message": "hi"}) == {"text": "hi"}
    payload = build_payload(
        {"message": 'say "hi"', "channel": "#builds", "username": "ci", "icon_emoji": ":rocket:", "color": "good"}
    )
    assert payload == {
        "text": 'say "hi"',
        "channel": "#builds",
        "username": "ci",
        "icon_emoji": ":rocket:",
        "attachments": [{"color": "good", "text": 'say "hi"'}],
    }


def test_slack_posts_json(server, log):
    httpd, base = server
    SlackRecipe().run({"webhook_url": f"{base}/hook", "message": "Build done", "channel": "#ci"}, log)
    req = httpd.requests[0]
    assert req["method"] == "POST"
    assert json.loads(req["body"]) == {"text": "Build done", "channel": "#ci"}
    text = log.read()
    assert "Channel: #ci" in text
    assert "Slack notification sent successfully" in text


def test_slack_webhook_from_environment(server, monkeypatch, log):
    httpd, base = server
    monkeypatch.setenv("SLACK_WEBHOOK_URL", f"{base}/env-hook")
    SlackRecipe().run({"message": "x"}, log)
    assert httpd.requests[0]["path"] == "/env-hook"


def test_slack_missing_webhook(monkeypatch, log):
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    with pytest.raises(RecipeError) as exc:
        SlackRecipe().run({"message": "x"}, log)
    assert exc.value.kind == "MissingSlackWebhookUrl"


def test_slack_server_error(server, log):
    _, base = server
    with pytest.raises(RecipeError) as exc:
        SlackRecipe().run({"webhook_url": f"{base}/fail", "message": "x"}, log)
    assert exc.value.kind == "SlackNotificationFailed"


def test_http_error_body_not_saved_to_output(server, tmp_path, log):
    _, base = server
    out = tmp_path / "resp.txt"
    with pytest.raises(RecipeError):
        HttpRecipe().run({"url": f"{base}/fail", "output": str(out)}, log)
    assert not out.exists()
    assert "server error" in log.read()
