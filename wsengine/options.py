from collections.abc import Sequence
from typing import Optional

from wsengine import exceptions
from wsengine import optmanager
from wsengine.utils import human

CONF_DIR = "~/.wsengine"
CONF_BASENAME = "config.yaml"
MAX_MESSAGE_SIZE = "1m"
MAX_LINE_LENGTH = 8192
MAX_HEADER_COUNT = 128


class Options(optmanager.OptManager):
    def __init__(self, **kwargs) -> None:
        super().__init__()
        self.add_option(
            "confdir",
            str,
            CONF_DIR,
            "Location of the default wsengine configuration files.",
        )

        # Protocol options
        self.add_option(
            "max_message_size",
            Optional[str],
            MAX_MESSAGE_SIZE,
            """
            Refuse messages larger than this, closing the connection with
            status 1009. Fragmented messages are limited as a whole.
            Understands k/m/g suffixes, i.e. 3m for 3 megabytes.
            """,
        )
        self.add_option(
            "max_line_length",
            int,
            MAX_LINE_LENGTH,
            "Maximum length of a single line in the opening handshake.",
        )
        self.add_option(
            "max_header_count",
            int,
            MAX_HEADER_COUNT,
            "Maximum number of header lines in the opening handshake.",
        )
        self.add_option(
            "websocket_subprotocols",
            Sequence[str],
            [],
            """
            Subprotocols to negotiate with Sec-WebSocket-Protocol. Servers accept
            the first one in this list that the client offers, clients offer all of them.
            """,
        )
        self.add_option(
            "validate_utf8",
            bool,
            True,
            """
            Close the connection with status 1007 if a text message or close reason
            is not valid UTF-8.
            """,
        )

        # Server options
        self.add_option(
            "listen_host",
            str,
            "127.0.0.1",
            "Address to bind the echo server to.",
        )
        self.add_option("listen_port", int, 8765, "Echo server service port.")

        self.update(**kwargs)


def check_options(opts: Options) -> None:
    """
    Validate option values that their type alone does not constrain.

    Raises:
        OptionsError, if a value is invalid.
    """
    try:
        human.parse_size(opts.max_message_size)
    except ValueError as e:
        raise exceptions.OptionsError(f"Invalid max_message_size: {e}") from e
    if opts.max_line_length <= 0:
        raise exceptions.OptionsError("max_line_length must be positive.")
    if opts.max_header_count < 0:
        raise exceptions.OptionsError("max_header_count must not be negative.")
