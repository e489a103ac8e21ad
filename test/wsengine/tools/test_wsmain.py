import argparse
import io

import pytest

from wsengine import log
from wsengine import version
from wsengine.options import Options
from wsengine.server import WebSocketServer
from wsengine.tools import cmdline
from wsengine.tools import main


@pytest.fixture
def no_logging(monkeypatch):
    levels = []
    monkeypatch.setattr(log, "setup_logging", levels.append)
    return levels


async def noop(opts, args):
    return 0


def test_version(capsys):
    assert main.run(cmdline.wsecho, noop, ["--version"]) == 0
    assert capsys.readouterr().out.startswith(version.VERSION)


def test_dump_options(capsys):
    assert main.run(cmdline.wsecho, noop, ["--options", "-p", "9000"]) == 0
    out = capsys.readouterr().out
    # defaults, not the effective values
    assert "listen_port: 8765" in out
    assert "max_message_size: 1m" in out


@pytest.mark.parametrize(
    "arguments, err",
    [
        (["--set", "nonexistent=1"], "Unknown option(s): nonexistent"),
        (["--set", "listen_port=foo"], "Not an integer"),
        (["--max-message-size", "lots"], "Invalid size"),
    ],
)
def test_bad_options(capsys, no_logging, arguments, err):
    assert main.run(cmdline.wsecho, noop, arguments) == 1
    assert err in capsys.readouterr().err
    assert no_logging == []


def test_options_precedence(tmp_path, monkeypatch, no_logging):
    seen = {}

    async def record(opts, args):
        seen["opts"] = opts
        seen["args"] = args
        return 42

    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / ".wsengine").mkdir()
    (tmp_path / ".wsengine" / "config.yaml").write_text(
        "listen_port: 1000\nlisten_host: 0.0.0.0\n"
    )
    ret = main.run(
        cmdline.wsecho,
        record,
        [
            "-v",
            "--set", "listen_port=2000",
            "--set", "validate_utf8=false",
            "--websocket-subprotocols", "chat",
            "--websocket-subprotocols", "superchat",
            "-p", "3000",
        ],
    )
    assert ret == 42
    opts = seen["opts"]
    assert opts.listen_port == 3000
    assert opts.listen_host == "0.0.0.0"
    assert opts.validate_utf8 is False
    assert opts.websocket_subprotocols == ["chat", "superchat"]
    assert no_logging == ["debug"]


def test_verbosity():
    parser = cmdline.wscat(Options())
    assert main.verbosity(parser.parse_args([])) == "info"
    assert main.verbosity(parser.parse_args(["-q"])) == "error"
    assert main.verbosity(parser.parse_args(["-v"])) == "debug"


def test_wscat_no_uri(no_logging):
    assert main.run(cmdline.wscat, main._wscat, []) == 2


def test_wscat_connection_refused(no_logging):
    assert main.run(cmdline.wscat, main._wscat, ["ws://127.0.0.1:1/"]) == 1


@pytest.mark.asyncio
async def test_wscat(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("hello\n"))
    async with WebSocketServer(options=Options(listen_port=0)) as server:
        host, port = server.listen_addrs[0][:2]
        opts = Options()
        args = cmdline.wscat(opts).parse_args([f"ws://{host}:{port}/"])
        assert isinstance(args, argparse.Namespace)
        assert await main._wscat(opts, args) == 0
