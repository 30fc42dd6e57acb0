"""High-level orchestration for the setup and reset commands."""

from __future__ import annotations

import functools
import shutil
import subprocess
import time
import typing as typ

from k3d_gitops.argocd import (
    add_repository,
    create_application,
    install_argocd,
    login,
    manual_completion_commands,
    retrieve_admin_password,
    sync_application,
)
from k3d_gitops.credentials import (
    ConnectionInfo,
    Credentials,
    remove_file_if_present,
    write_connection_info,
    write_password_file,
)
from k3d_gitops.k3d import (
    cluster_exists,
    delete_k3d_cluster,
    kubeconfig_env,
    recreate_k3d_cluster,
)
from k3d_gitops.k8s import wait_for_pods_ready
from k3d_gitops.logging import get_logger, log_error, log_warning
from k3d_gitops.port_forward import (
    PortForward,
    establish_tunnel,
    kill_port_forwards,
    probe_tunnel,
)
from k3d_gitops.ports import find_available_port
from k3d_gitops.session import Session
from k3d_gitops.validation import (
    ExecutableNotFoundError,
    PortUnavailableError,
    require_exe,
    require_tools,
)

if typ.TYPE_CHECKING:
    from k3d_gitops.config import Config

REQUIRED_TOOLS = ("k3d", "kubectl", "argocd")

# Grace period after killing stale port-forwards (seconds)
_STALE_FORWARD_SETTLE = 2.0

# Exit code for a run interrupted before setup finished
EXIT_INTERRUPTED = 130

logger = get_logger(__name__)


def _print_header() -> None:
    print("K3D Cluster and Argo CD Setup")
    print("=" * 37)
    print()


def _open_tunnel(
    session: Session, *, sleep: typ.Callable[[float], None]
) -> bool:
    """Pick a port and bring up a stable tunnel owned by ``session``."""
    cfg = session.cfg
    print("Starting port forwarding...")
    kill_port_forwards(cfg.port_forward_pattern)
    sleep(_STALE_FORWARD_SETTLE)

    print("Looking for an available port...")
    try:
        session.port = find_available_port(cfg.base_port, cfg.port_window)
    except PortUnavailableError as exc:
        log_error(logger, "%s", exc)
        return False
    print(f"Using port: {session.port}")

    print("Waiting for Argo CD server pod to be ready...")
    try:
        wait_for_pods_ready(
            cfg.server_selector, cfg.namespace, session.env, timeout=cfg.wait_timeout
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
        log_error(logger, "Argo CD server pod did not become ready: %s", exc)
        return False

    session.forward = PortForward(
        cfg.server_service,
        cfg.namespace,
        session.port,
        remote_port=cfg.remote_port,
        env=session.env,
    )
    session.forward.start()
    print(f"Port forwarding started (PID: {session.forward.pid})")
    print(f"Argo CD UI: {session.url}")

    print("Testing Argo CD server connection...")
    if establish_tunnel(
        session.forward,
        retries=cfg.forward_retries,
        delay=cfg.forward_retry_delay,
        probe=functools.partial(probe_tunnel, timeout=cfg.probe_timeout),
        sleep=sleep,
    ):
        print(f"Argo CD server is accessible on port {session.port}.")
        return True

    log_error(
        logger,
        "Failed to establish a stable connection to Argo CD on port %d",
        session.port,
    )
    return False


def _connection_info(session: Session) -> ConnectionInfo:
    creds = session.credentials
    if session.port is None or session.url is None or creds is None:
        msg = "connection info requires a port and credentials"
        raise RuntimeError(msg)
    return ConnectionInfo(
        port=session.port,
        url=session.url,
        username=creds.username,
        password=creds.password,
    )


def _print_summary(session: Session, info: ConnectionInfo) -> None:
    cfg = session.cfg
    print()
    print("Setup completed!")
    print("Summary:")
    print(f"  Argo CD UI:    {info.url}")
    print(f"  Username:      {info.username}")
    print(f"  Password:      {info.password}")
    print(f"  Password file: {cfg.password_file}")
    print(f"  Port used:     {info.port}")
    print(f"  Connection:    {cfg.connection_file}")


def _print_manual_completion(cfg: Config, info: ConnectionInfo) -> None:
    print()
    print("Setup completed but Argo CD login failed.")
    print(f"You can try accessing Argo CD manually at {info.url}")
    print(f"Username: {info.username}, Password: {info.password}")
    print("Manual commands to complete setup:")
    for command in manual_completion_commands(cfg, info.port, info.password):
        print(f"  {command}")


def _hold_tunnel(session: Session) -> int:
    """Keep the tunnel open until Ctrl+C or until kubectl exits on its own."""
    if session.forward is None:
        return 0
    print()
    print("Port forwarding is running in the background. Press Ctrl+C to stop.")
    try:
        code = session.forward.wait()
    except KeyboardInterrupt:
        print()
        print("Stopping port forwarding...")
        return 0

    log_warning(logger, "Port forwarding exited with code %d", code)
    print("Port forwarding exited unexpectedly.")
    return 1


def _run_setup(
    session: Session, *, hold: bool, sleep: typ.Callable[[float], None]
) -> int:
    cfg = session.cfg

    recreate_k3d_cluster(cfg)
    session.env = kubeconfig_env(cfg.cluster_name)

    install_argocd(cfg, session.env)

    password = retrieve_admin_password(cfg, session.env, sleep=sleep)
    session.credentials = Credentials(cfg.admin_username, password)
    print(f"Argo CD admin password: {password}")
    write_password_file(cfg.password_file, password)
    print(f"Password saved to '{cfg.password_file}'.")

    if not _open_tunnel(session, sleep=sleep):
        print()
        print("Setup failed due to port forwarding issues.")
        print("Try running the script again or check if ports are available.")
        return 1

    info = _connection_info(session)
    write_connection_info(cfg.connection_file, info)
    print(f"Connection info saved to '{cfg.connection_file}'.")

    if not login(cfg, info.port, info.password, sleep=sleep):
        _print_manual_completion(cfg, info)
        return _hold_tunnel(session) if hold else 0

    add_repository(cfg)
    create_application(cfg)
    sync_application(cfg)

    _print_summary(session, info)
    return _hold_tunnel(session) if hold else 0


def setup_environment(
    cfg: Config,
    *,
    hold: bool = True,
    sleep: typ.Callable[[float], None] = time.sleep,
) -> int:
    """Create the cluster, install Argo CD and bootstrap the application.

    Any failure before the tunnel step aborts the run. Tunnel and login
    failures are handled locally: the first ends the run with exit code 1,
    the second prints manual completion steps instead.

    Args:
        cfg: Run configuration.
        hold: Keep the tunnel open after setup until interrupted.
        sleep: Delay function used by every wait and retry loop.

    Returns:
        Exit code (0 for success or degraded success, non-zero for failure).

    """
    _print_header()
    print("Checking required tools...")
    require_tools(REQUIRED_TOOLS)
    print("All requirements satisfied.")

    try:
        with Session(cfg) as session:
            return _run_setup(session, hold=hold, sleep=sleep)
    except KeyboardInterrupt:
        print()
        print("Interrupted; port forwarding stopped.")
        return EXIT_INTERRUPTED


def confirm_reset(prompt_input: typ.Callable[[str], str] | None = None) -> bool:
    """Ask before destroying anything. Only ``y`` or ``Y`` confirms.

    ``prompt_input`` defaults to :func:`input`, looked up at call time. End of
    input and Ctrl+C both count as no.
    """
    ask = prompt_input or input
    print("This will delete the k3d cluster and all Argo CD data!")
    try:
        answer = ask("Are you sure? (y/N): ")
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer.strip() in {"y", "Y"}


def _delete_cluster_if_present(cfg: Config) -> None:
    try:
        require_exe("k3d")
    except ExecutableNotFoundError as exc:
        log_warning(logger, "%s; skipping cluster deletion", exc)
        print("k3d not found; skipping cluster deletion.")
        return

    if cluster_exists(cfg.cluster_name):
        print(f"Deleting k3d cluster '{cfg.cluster_name}'...")
        delete_k3d_cluster(cfg.cluster_name)
        print(f"K3D cluster '{cfg.cluster_name}' deleted.")
    else:
        print(f"No k3d cluster '{cfg.cluster_name}' found.")


def reset_environment(cfg: Config) -> int:
    """Undo everything setup leaves behind.

    Every step checks for its target first, so running this on a clean
    machine is a no-op. Without k3d on PATH the cluster step is skipped and
    the local files are still removed.

    Args:
        cfg: Run configuration naming the cluster, files and directories.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    print("Resetting system...")

    print("Stopping port forwarding processes...")
    kill_port_forwards(cfg.port_forward_pattern)

    _delete_cluster_if_present(cfg)

    if remove_file_if_present(cfg.password_file):
        print("Password file removed.")
    if remove_file_if_present(cfg.connection_file):
        print("Connection info file removed.")

    if cfg.argocd_config_dir.is_dir():
        shutil.rmtree(cfg.argocd_config_dir)
        print("Argo CD config directory removed.")

    print("System reset completed!")
    return 0
