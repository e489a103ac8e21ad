import argparse


def common_options(parser, opts):
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "--options",
        action="store_true",
        help="Print all options with their default values as YAML and exit.",
    )
    parser.add_argument(
        "--set",
        type=str,
        dest="setoptions",
        default=[],
        action="append",
        metavar="option[=value]",
        help="""
            Set any option, overriding the config file. Booleans take true,
            false or toggle and a bare name means true. A bare name clears
            optional values and lists. Repeat the flag to build up a list.
        """,
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only log errors."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        dest="verbose",
        const="debug",
        help="Log protocol details.",
    )

    # Protocol options
    group = parser.add_argument_group("WebSocket Options")
    opts.make_parser(group, "max_message_size", metavar="SIZE")
    opts.make_parser(group, "websocket_subprotocols", metavar="NAME")
    opts.make_parser(group, "validate_utf8")


def wsecho(opts):
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options]",
        description="Run a WebSocket echo server.",
    )
    common_options(parser, opts)

    group = parser.add_argument_group("Server Options")
    opts.make_parser(group, "listen_host", metavar="HOST")
    opts.make_parser(group, "listen_port", metavar="PORT", short="p")
    return parser


def wscat(opts):
    parser = argparse.ArgumentParser(
        usage="%(prog)s [options] uri",
        description="""
            Connect to a WebSocket server, send each line read from stdin
            as a text message and print all messages received.
        """,
    )
    parser.add_argument("uri", nargs="?", help="ws:// or wss:// URI to connect to.")
    parser.add_argument(
        "--origin",
        type=str,
        dest="origin",
        default=None,
        help="Send an Origin header with the upgrade request.",
    )
    common_options(parser, opts)
    return parser
