import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from hcloudcli.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_NETWORK_ERROR,
    EXIT_OK,
    EXIT_PROTOCOL_ERROR,
    main,
)


class _Srv(BaseHTTPRequestHandler):
    calls = {"images": 0, "actions": 0}

    protocol_version = "HTTP/1.1"

    def _send_json(self, status, obj):
        raw = json.dumps(obj).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def do_GET(self):  # noqa: N802
        if self.headers.get("Authorization") != "Bearer CLITOKEN":
            self._send_json(401, {"error": {"code": "unauthorized", "message": "unable to authenticate"}})
        elif self.path == "/v1/images":
            _Srv.calls["images"] += 1
            self._send_json(200, {"images": [
                {"id": 1, "name": "debian-9", "type": "system"},
                {"id": 2, "name": "ubuntu-16.04", "type": "system"},
            ]})
        elif self.path == "/v1/images/1":
            self._send_json(200, {"image": {"id": 1, "name": "debian-9", "type": "system"}})
        elif self.path == "/v1/actions/9":
            _Srv.calls["actions"] += 1
            status = "running" if _Srv.calls["actions"] < 2 else "success"
            self._send_json(200, {"action": {"id": 9, "status": status}})
        else:
            self._send_json(404, {"error": {"code": "not_found", "message": "not found"}})

    def log_message(self, fmt, *args):
        return


@pytest.fixture()
def cli_env(tmp_path, monkeypatch):
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Srv)
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    _Srv.calls = {"images": 0, "actions": 0}

    monkeypatch.chdir(tmp_path)
    for key in ("HCLOUDDEBUG", "HCLOUD_API__TOKEN", "HCLOUD_API__BASE_URL"):
        monkeypatch.delenv(key, raising=False)
    token_file = tmp_path / "token"
    token_file.write_text("CLITOKEN\n", encoding="utf-8")
    (tmp_path / "hcloud.yml").write_text("poll:\n  interval_sec: 0.01\n", encoding="utf-8")

    yield ["--base-url", f"http://{host}:{port}/v1", "--token-file", str(token_file)]

    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)
    for h in list(logging.getLogger("hcloudcli").handlers):
        logging.getLogger("hcloudcli").removeHandler(h)
        h.close()


def test_json_output(cli_env, capsys):
    assert main(cli_env + ["get_images()"]) == EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert [i["name"] for i in out] == ["debian-9", "ubuntu-16.04"]


def test_format_flag_and_prefix(cli_env, capsys):
    assert main(cli_env + ["-f", "raw", "get_image(1)['name']", ".csv get('images', 'id', 'name')"]) == EXIT_OK
    assert capsys.readouterr().out == "debian-9\n1\tdebian-9\n2\tubuntu-16.04\n"


def test_wait_for_action_uses_configured_interval(cli_env, capsys):
    assert main(cli_env + [".raw wait_for_action(9)['status']"]) == EXIT_OK
    assert capsys.readouterr().out == "success\n"
    assert _Srv.calls["actions"] == 2


def test_bad_reply_sets_exit_code_but_later_expressions_run(cli_env, capsys):
    code = main(cli_env + ["get_server(5)", ".raw 1+1"])
    assert code == EXIT_PROTOCOL_ERROR
    captured = capsys.readouterr()
    assert captured.out == "2\n"
    assert "not_found" in captured.err


def test_missing_id_is_protocol_error(cli_env):
    assert main(cli_env + ["get_image(0)"]) == EXIT_PROTOCOL_ERROR


def test_missing_token_is_config_error(cli_env, tmp_path):
    args = list(cli_env)
    args[args.index("--token-file") + 1] = str(tmp_path / "missing")
    assert main(args + ["get_images()"]) == EXIT_CONFIG_ERROR


def test_unknown_default_format_is_config_error(cli_env):
    assert main(cli_env + ["-f", "xml", "get_images()"]) == EXIT_CONFIG_ERROR


def test_missing_config_file(cli_env, tmp_path):
    assert main(cli_env + ["--config", str(tmp_path / "nope.yml"), "1"]) == EXIT_CONFIG_ERROR


def test_network_error_exit_code(cli_env, tmp_path):
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Srv)
    host, port = server.server_address
    server.server_close()
    args = list(cli_env)
    args[args.index("--base-url") + 1] = f"http://{host}:{port}/v1"
    assert main(args + ["--timeout-sec", "0.5", "get_images()"]) == EXIT_NETWORK_ERROR
