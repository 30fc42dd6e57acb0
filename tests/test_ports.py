"""Unit tests for local port discovery."""

from __future__ import annotations

import socket

import pytest

from k3d_gitops import PortUnavailableError
from k3d_gitops.ports import (
    candidate_ports,
    find_available_port,
    port_has_no_listener,
    port_is_bindable,
    port_is_free,
)


class TestCandidatePorts:
    """Tests for the scanned window."""

    def test_default_window_covers_fifty_one_ports(self) -> None:
        """The default window should be 8081 through 8131 inclusive."""
        ports = candidate_ports()

        assert ports[0] == 8081
        assert ports[-1] == 8131
        assert len(ports) == 51

    @pytest.mark.parametrize(
        ("base", "window"),
        [
            (80, 51),  # privileged base
            (65500, 51),  # runs past 65535
            (8081, 0),  # empty window
        ],
    )
    def test_rejects_invalid_window(self, base: int, window: int) -> None:
        """Windows outside 1024-65535 or empty windows should be rejected."""
        with pytest.raises(ValueError, match=r"window|port"):
            candidate_ports(base, window)


class TestFindAvailablePort:
    """Tests for find_available_port with an injected probe."""

    def test_returns_base_when_free(self) -> None:
        """The base port should win when it is free."""
        assert find_available_port(9000, probe=lambda _port: True) == 9000

    def test_skips_occupied_ports(self) -> None:
        """The first free port after occupied ones should be returned."""
        occupied = {9000, 9001, 9002}

        port = find_available_port(9000, probe=lambda p: p not in occupied)

        assert port == 9003

    def test_returns_last_port_in_window(self) -> None:
        """The last port of the window is still a candidate."""
        port = find_available_port(9000, 51, probe=lambda p: p == 9050)

        assert port == 9050

    def test_never_probes_outside_window(self) -> None:
        """Ports beyond base + 50 should never be probed or returned."""
        probed: list[int] = []

        def probe(port: int) -> bool:
            probed.append(port)
            return port > 9050

        with pytest.raises(PortUnavailableError, match="9000 and 9050"):
            find_available_port(9000, 51, probe=probe)

        assert probed == list(range(9000, 9051))

    def test_exhaustion_raises(self) -> None:
        """A fully occupied window should raise instead of returning a port."""
        with pytest.raises(PortUnavailableError):
            find_available_port(9000, 5, probe=lambda _port: False)


class TestLocalChecks:
    """Tests for the socket-level checks against a real listener."""

    def test_listening_port_is_not_free(self) -> None:
        """A port with a live listener should fail both checks."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen()
            port = listener.getsockname()[1]

            assert port_is_bindable(port) is False
            assert port_has_no_listener(port) is False
            assert port_is_free(port) is False

    def test_released_port_has_no_listener(self) -> None:
        """A port nobody listens on should refuse connections."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        assert port_has_no_listener(port) is True
