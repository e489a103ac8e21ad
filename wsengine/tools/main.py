from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import threading
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence

from wsengine import client
from wsengine import exceptions
from wsengine import log
from wsengine import optmanager
from wsengine import options
from wsengine import version
from wsengine.connection import ConnectionState
from wsengine.server import WebSocketServer
from wsengine.server import echo
from wsengine.tools import cmdline

logger = logging.getLogger(__name__)


def process_options(parser, opts, args):
    adict = {
        key: val for key, val in vars(args).items() if key in opts and val is not None
    }
    opts.update(**adict)


def verbosity(args) -> str:
    if args.quiet:
        return "error"
    if args.verbose:
        return "debug"
    return "info"


def run(
    make_parser: Callable[[options.Options], argparse.ArgumentParser],
    main: Callable[[options.Options, argparse.Namespace], Awaitable[int]],
    arguments: Sequence[str] | None,
) -> int:
    opts = options.Options()
    parser = make_parser(opts)
    args = parser.parse_args(arguments)

    if args.version:
        print(version.get_dev_version())
        return 0

    try:
        # options from the command line take precedence over the config file
        optmanager.load_paths(
            opts,
            os.path.join(opts.confdir, options.CONF_BASENAME),
            os.path.join(opts.confdir, "config.yml"),
        )
        opts.set(*args.setoptions)
        process_options(parser, opts, args)
        options.check_options(opts)
    except exceptions.OptionsError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    if args.options:
        optmanager.dump_defaults(opts, sys.stdout)
        return 0

    log.setup_logging(verbosity(args))
    try:
        return asyncio.run(main(opts, args))
    except KeyboardInterrupt:
        return 0


async def _wsecho(opts: options.Options, args: argparse.Namespace) -> int:
    server = WebSocketServer(echo, opts)
    try:
        await server.start()
    except OSError as e:
        logger.error(f"Cannot start server: {e}")
        return 1

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def _shutdown(*_):
        loop.call_soon_threadsafe(stop.set)

    # loop.add_signal_handler is not available on Windows' ProactorEventLoop.
    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    await stop.wait()
    await server.stop()
    return 0


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    for line in sys.stdin:
        loop.call_soon_threadsafe(lines.put_nowait, line)
    loop.call_soon_threadsafe(lines.put_nowait, None)


async def _wscat(opts: options.Options, args: argparse.Namespace) -> int:
    if not args.uri:
        logger.error("A URI to connect to is required.")
        return 2
    try:
        conn = await client.connect(args.uri, opts, origin=args.origin)
    except (OSError, ValueError, exceptions.HandshakeError) as e:
        logger.error(f"Cannot connect to {args.uri}: {e}")
        return 1

    async def print_messages():
        async for message in conn:
            if message.is_text:
                print(f"< {message.text}")
            else:
                print(f"< {message.content!r}")

    printer = asyncio.create_task(print_messages())
    lines: asyncio.Queue[str | None] = asyncio.Queue()
    # a daemon thread, so that a pending read does not keep the process alive
    threading.Thread(
        target=_read_stdin, args=(asyncio.get_running_loop(), lines), daemon=True
    ).start()

    while conn.state is ConnectionState.OPEN:
        get_line = asyncio.create_task(lines.get())
        await asyncio.wait([get_line, printer], return_when=asyncio.FIRST_COMPLETED)
        if not get_line.done():
            # the server has closed the connection
            get_line.cancel()
            break
        line = get_line.result()
        if line is None:
            break
        try:
            await conn.send(line.rstrip("\n"))
        except exceptions.ConnectionClosed:
            break

    await conn.close()
    await printer
    if conn.close_code not in (None, 1000, 1005):
        logger.info(f"Connection closed: {conn.close_code} {conn.close_reason}")
        return 1
    return 0


def wsecho(args=None) -> int:  # pragma: no cover
    return run(cmdline.wsecho, _wsecho, args)


def wscat(args=None) -> int:  # pragma: no cover
    return run(cmdline.wscat, _wscat, args)
