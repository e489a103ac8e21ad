import subprocess
import sys
from pathlib import Path

VERSION = "0.4.0"

# RFC 6455 protocol version spoken on the wire, sent as Sec-WebSocket-Version.
WEBSOCKET_VERSION = "13"


def _git_describe() -> tuple[int, str] | None:
    """
    Commits since the last tag and the abbreviated commit hash,
    or None outside of a git checkout.
    """
    try:
        out = subprocess.check_output(
            ["git", "describe", "--tags", "--long"],
            cwd=Path(__file__).resolve().parent.parent,
            stderr=subprocess.DEVNULL,
        )
        _, distance, commit = out.decode().strip().rsplit("-", 2)
        return int(distance), commit.removeprefix("g")[:7]
    except (OSError, subprocess.CalledProcessError, ValueError):
        return None


def get_dev_version() -> str:
    """
    VERSION, plus commit information for untagged development builds.
    """
    ret = VERSION
    described = _git_describe()
    if described and described[0] > 0:
        ret += f" (+{described[0]}, commit {described[1]})"
    if getattr(sys, "frozen", False):
        ret += " binary"
    return ret


if __name__ == "__main__":  # pragma: no cover
    print(VERSION)
