"""Supervision of the kubectl port-forward tunnel to the Argo CD server.

The tunnel is a single ``kubectl port-forward`` child process owned by a
:class:`PortForward`. Using it as a context manager guarantees the child is
terminated however the owning scope exits, including on Ctrl+C.

:func:`establish_tunnel` probes the tunnel until it answers over HTTPS,
restarting the child in place when it dies. Restarts share the attempt
budget; they never reset it.
"""

from __future__ import annotations

import subprocess
import time
import typing as typ

import httpx

from k3d_gitops.logging import get_logger, log_debug, log_info, log_warning
from k3d_gitops.validation import TunnelError

if typ.TYPE_CHECKING:
    import types

# Seconds to wait for a terminated child before killing it
_STOP_TIMEOUT = 5.0

logger = get_logger(__name__)


def kill_port_forwards(pattern: str) -> bool:
    """Kill every process whose command line matches ``pattern``.

    Returns
    -------
    bool
        True if at least one process was signalled. No match is not an error.

    """
    try:
        # S603/S607: pkill via PATH is standard; pattern from Config
        result = subprocess.run(  # noqa: S603
            ["pkill", "-f", pattern],  # noqa: S607
            capture_output=True,
            check=False,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_warning(logger, "Could not look for stale port-forwards: %s", exc)
        return False
    killed = result.returncode == 0
    if killed:
        log_info(logger, "Stopped existing port-forward processes matching %r", pattern)
    return killed


def probe_tunnel(port: int, timeout: float = 2.0) -> bool:
    """Return True when an HTTPS request through the tunnel gets any response.

    The Argo CD server uses a self-signed certificate, so verification is
    disabled for this probe.
    """
    try:
        httpx.get(f"https://localhost:{port}", verify=False, timeout=timeout)  # noqa: S501
    except httpx.HTTPError as exc:
        log_debug(logger, "Tunnel probe on port %d failed: %s", port, exc)
        return False
    return True


class PortForward:
    """A single ``kubectl port-forward svc/<service>`` child process.

    Parameters
    ----------
    service : str
        Service to forward to.
    namespace : str
        Namespace of the service.
    local_port : int
        Local port to listen on.
    remote_port : int, default 443
        Service port to forward to.
    env : dict[str, str], optional
        Environment for kubectl, normally with KUBECONFIG set.

    """

    def __init__(
        self,
        service: str,
        namespace: str,
        local_port: int,
        remote_port: int = 443,
        env: dict[str, str] | None = None,
    ) -> None:
        """Describe the tunnel without starting it."""
        self.service = service
        self.namespace = namespace
        self.local_port = local_port
        self.remote_port = remote_port
        self._env = env
        self._process: subprocess.Popen[bytes] | None = None

    @property
    def command(self) -> list[str]:
        """Return the kubectl command line for this tunnel."""
        return [
            "kubectl",
            "port-forward",
            f"svc/{self.service}",
            "-n",
            self.namespace,
            f"{self.local_port}:{self.remote_port}",
        ]

    @property
    def pid(self) -> int | None:
        """Return the child's process ID, or None before it is started."""
        return None if self._process is None else self._process.pid

    def start(self) -> None:
        """Spawn the child. Any child this object already owns is stopped first."""
        self.stop()
        # S603: kubectl via PATH is standard; args from Config
        self._process = subprocess.Popen(  # noqa: S603
            self.command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=self._env,
        )
        log_info(
            logger,
            "Port forwarding started on %d (pid %s)",
            self.local_port,
            self._process.pid,
        )

    def is_alive(self) -> bool:
        """Return True while the child is running."""
        return self._process is not None and self._process.poll() is None

    def restart(self) -> None:
        """Replace the child with a fresh one on the same port."""
        log_warning(logger, "Port forwarding process died; restarting")
        self.start()

    def wait(self) -> int:
        """Block until the child exits and return its exit code."""
        if self._process is None:
            msg = "port-forward has not been started"
            raise TunnelError(msg)
        return self._process.wait()

    def stop(self, timeout: float = _STOP_TIMEOUT) -> None:
        """Terminate the child if running. Safe to call repeatedly."""
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        log_info(logger, "Port forwarding stopped (pid %s)", process.pid)

    def __enter__(self) -> PortForward:
        """Return self; the caller decides when to start."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Stop the child on every exit path."""
        self.stop()


def establish_tunnel(
    forward: PortForward,
    *,
    retries: int = 30,
    delay: float = 2.0,
    probe: typ.Callable[[int], bool] | None = None,
    sleep: typ.Callable[[float], None] = time.sleep,
) -> bool:
    """Start ``forward`` if needed and wait for it to carry traffic.

    Parameters
    ----------
    forward : PortForward
        Tunnel to supervise.
    retries : int, default 30
        Number of probe attempts before giving up.
    delay : float, default 2.0
        Seconds between attempts.
    probe : Callable[[int], bool], optional
        Liveness check taking the local port; defaults to :func:`probe_tunnel`.
    sleep : Callable[[float], None], optional
        Delay function used between attempts.

    Returns
    -------
    bool
        True once a probe succeeds, False when the budget is exhausted.

    """
    check = probe or probe_tunnel
    if not forward.is_alive():
        forward.start()

    for attempt in range(1, retries + 1):
        if check(forward.local_port):
            return True

        if not forward.is_alive():
            forward.restart()

        print(
            f"Attempt {attempt}/{retries} - waiting for Argo CD server "
            f"on port {forward.local_port}..."
        )
        sleep(delay)

    return False
