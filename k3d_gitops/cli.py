"""Command-line entry point for the local k3d + Argo CD bootstrap.

Usage:
    k3d-gitops            # Setup (default action)
    k3d-gitops setup      # Create the cluster, install Argo CD, sync the app
    k3d-gitops reset      # Delete the cluster and local Argo CD state
    k3d-gitops help       # Show usage

Environment variables:
    K3D_GITOPS_CLUSTER    - Cluster name (default: mycluster)
    K3D_GITOPS_BASE_PORT  - First candidate tunnel port (default: 8081)
    K3D_GITOPS_LOG_LEVEL  - Diagnostic log level (default: INFO)
"""

from __future__ import annotations

import subprocess
import sys
import typing as typ

from cyclopts import App, Parameter

from k3d_gitops.config import Config
from k3d_gitops.logging import (
    configure_logging,
    get_logger,
    log_exception,
    log_warning,
)
from k3d_gitops.orchestration import (
    confirm_reset,
    reset_environment,
    setup_environment,
)
from k3d_gitops.ports import candidate_ports
from k3d_gitops.validation import BootstrapError

__version__ = "0.1.0"

PROG = "k3d-gitops"

SETUP_ACTIONS = frozenset({"setup", "-s", "--setup", "menu", "-m", "--menu", ""})
RESET_ACTIONS = frozenset({"reset", "-r", "--reset"})
HELP_ACTIONS = frozenset({"help", "-h", "--help"})

USAGE = f"""\
K3D Cluster and Argo CD Setup
=====================================

Usage: {PROG} [OPTION]

Options:
  setup, -s, --setup     Setup k3d cluster and Argo CD (default)
  reset, -r, --reset     Reset/cleanup the system
  help, -h, --help       Show this help message

Settings:
  --cluster-name NAME    k3d cluster name [env: K3D_GITOPS_CLUSTER]
  --base-port PORT       First candidate tunnel port [env: K3D_GITOPS_BASE_PORT]
  --log-level LEVEL      Diagnostic log level [env: K3D_GITOPS_LOG_LEVEL]
  --yes                  Reset without asking for confirmation

Examples:
  {PROG}                 # Setup (default action)
  {PROG} setup           # Setup k3d and Argo CD
  {PROG} reset           # Reset/cleanup system
  {PROG} help            # Show help
"""

logger = get_logger(__name__)

# Action dispatch is handled below so that "-s", "--reset" and friends are
# plain values rather than cyclopts flags.
app = App(
    name=PROG,
    help="Bootstrap a local k3d cluster with Argo CD.",
    version=__version__,
    help_flags=(),
    version_flags=(),
)


def print_usage() -> None:
    """Print the usage text."""
    print(USAGE, end="")


def _setup(cfg: Config) -> int:
    # Reject a bad port window before the cluster is touched.
    candidate_ports(cfg.base_port, cfg.port_window)
    return setup_environment(cfg)


def _reset(cfg: Config, *, assume_yes: bool) -> int:
    if not assume_yes and not confirm_reset():
        print("Reset cancelled.")
        return 0
    return reset_environment(cfg)


def run_action(action: str, cfg: Config, *, assume_yes: bool = False) -> int:
    """Dispatch ``action`` and return the exit code.

    Args:
        action: The single positional argument given on the command line.
        cfg: Run configuration.
        assume_yes: Skip the reset confirmation prompt.

    Returns:
        Exit code. Unknown actions return 1 after printing the usage text.

    """
    if action in HELP_ACTIONS:
        print_usage()
        return 0

    try:
        if action in SETUP_ACTIONS:
            return _setup(cfg)
        if action in RESET_ACTIONS:
            return _reset(cfg, assume_yes=assume_yes)
    except (
        BootstrapError,
        RuntimeError,
        ValueError,
        OSError,
        subprocess.SubprocessError,
    ) as exc:
        log_exception(logger, f"{action or 'setup'} failed", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Unknown option: {action}")
    print_usage()
    return 1


@app.default
def main_command(
    action: typ.Annotated[str, Parameter(allow_leading_hyphen=True)] = "",
    *,
    cluster_name: typ.Annotated[
        str, Parameter(env_var="K3D_GITOPS_CLUSTER")
    ] = "mycluster",
    base_port: typ.Annotated[int, Parameter(env_var="K3D_GITOPS_BASE_PORT")] = 8081,
    log_level: typ.Annotated[
        str, Parameter(env_var="K3D_GITOPS_LOG_LEVEL")
    ] = "INFO",
    yes: bool = False,
) -> int:
    """Set up or reset the local k3d + Argo CD environment.

    Args:
        action: One of setup/-s/--setup, reset/-r/--reset, help/-h/--help.
            Omitted means setup.
        cluster_name: Name of the k3d cluster.
        base_port: First candidate local port for the Argo CD tunnel.
        log_level: Diagnostic log level.
        yes: Reset without asking for confirmation.

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    normalized, invalid = configure_logging(log_level, force=True)
    if invalid:
        log_warning(
            logger, "Invalid log level %r, falling back to %s", log_level, normalized
        )

    cfg = Config(cluster_name=cluster_name, base_port=base_port)
    return run_action(action, cfg, assume_yes=yes)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
