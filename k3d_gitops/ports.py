"""Local port discovery for the Argo CD tunnel.

A candidate port is used only when two independent checks agree it is free:
a listening socket can be bound to it on the loopback interface, and nothing
on the loopback interface accepts connections on it. The window is scanned
linearly from the base port and is never widened.
"""

from __future__ import annotations

import errno
import socket
import typing as typ

from k3d_gitops.logging import get_logger, log_debug
from k3d_gitops.validation import PortUnavailableError

_MIN_PORT = 1024
_MAX_PORT = 65535
_LOOPBACK = "127.0.0.1"

# Connect timeout for the listener check (seconds)
_CONNECT_TIMEOUT = 0.2

DEFAULT_BASE_PORT = 8081
DEFAULT_PORT_WINDOW = 51

logger = get_logger(__name__)


def _ensure_valid_window(base: int, window: int) -> None:
    """Validate the candidate window stays within non-privileged ports."""
    if window < 1:
        msg = f"window must be >= 1, got {window}"
        raise ValueError(msg)
    last = base + window - 1
    if not (_MIN_PORT <= base and last <= _MAX_PORT):
        msg = (
            f"port window {base}-{last} must lie between "
            f"{_MIN_PORT} and {_MAX_PORT}"
        )
        raise ValueError(msg)


def port_is_bindable(port: int, host: str = _LOOPBACK) -> bool:
    """Return True when a listening socket can be bound to ``port``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def port_has_no_listener(port: int, host: str = _LOOPBACK) -> bool:
    """Return True when nothing accepts TCP connections on ``port``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(_CONNECT_TIMEOUT)
        result = sock.connect_ex((host, port))
    # Only an explicit refusal counts; a timeout means something holds the port.
    return result == errno.ECONNREFUSED


def port_is_free(port: int) -> bool:
    """Return True when both local checks report ``port`` as unused."""
    return port_is_bindable(port) and port_has_no_listener(port)


def candidate_ports(
    base: int = DEFAULT_BASE_PORT, window: int = DEFAULT_PORT_WINDOW
) -> range:
    """Return the ports scanned for ``base`` and ``window``."""
    _ensure_valid_window(base, window)
    return range(base, base + window)


def find_available_port(
    base: int = DEFAULT_BASE_PORT,
    window: int = DEFAULT_PORT_WINDOW,
    *,
    probe: typ.Callable[[int], bool] | None = None,
) -> int:
    """Return the first free port in ``[base, base + window - 1]``.

    Parameters
    ----------
    base : int, default 8081
        First port to try.
    window : int, default 51
        Number of consecutive ports to try.
    probe : Callable[[int], bool], optional
        Replacement for :func:`port_is_free`.

    Returns
    -------
    int
        The first port reported free.

    Raises
    ------
    ValueError
        If the window falls outside 1024-65535.
    PortUnavailableError
        If every port in the window is in use.

    """
    is_free = probe or port_is_free
    ports = candidate_ports(base, window)
    for port in ports:
        if is_free(port):
            return port
        log_debug(logger, "Port %d is in use", port)

    msg = f"No available port found between {ports[0]} and {ports[-1]}"
    raise PortUnavailableError(msg)
