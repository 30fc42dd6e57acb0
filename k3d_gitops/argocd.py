"""Argo CD installation and argocd CLI operations.

Installation goes through kubectl; everything after the tunnel is up goes
through the argocd CLI, which keeps its own session under ``~/.argocd``.

Examples
--------
Install Argo CD and wait for the generated admin password:

    install_argocd(cfg, env)
    password = retrieve_admin_password(cfg, env)

Log in through a tunnel on port 8081 and register the application:

    if login(cfg, 8081, password):
        add_repository(cfg)
        create_application(cfg)
        sync_application(cfg)

"""

from __future__ import annotations

import subprocess
import time
import typing as typ

from k3d_gitops.k8s import (
    apply_manifest_url,
    create_namespace,
    patch_configmap_json,
    read_secret_field,
    rollout_restart,
    secret_exists,
    wait_for_deployment_available,
)
from k3d_gitops.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from k3d_gitops.config import Config

# Exposes Endpoints and EndpointSlices in the Argo CD resource tree.
_RESOURCE_EXCLUSIONS_PATCH: list[dict[str, object]] = [
    {"op": "remove", "path": "/data/resource.exclusions"}
]

_ARGOCD_TIMEOUT = 120

logger = get_logger(__name__)


def install_argocd(cfg: Config, env: dict[str, str]) -> None:
    """Install Argo CD into ``cfg.namespace`` and wait for its API server.

    After the first rollout the ``resource.exclusions`` setting is dropped
    from the settings ConfigMap and the server is restarted to pick it up.
    A missing setting is not an error.
    """
    print("Installing Argo CD...")
    create_namespace(cfg.namespace, env)
    apply_manifest_url(cfg.install_manifest_url, cfg.namespace, env)

    print("Waiting for Argo CD server to become available...")
    wait_for_deployment_available(
        cfg.server_deployment, cfg.namespace, env, timeout=cfg.wait_timeout
    )

    print("Making Endpoints and EndpointSlices visible...")
    if not patch_configmap_json(
        cfg.settings_configmap, cfg.namespace, _RESOURCE_EXCLUSIONS_PATCH, env
    ):
        print("resource.exclusions is not set; nothing to remove.")
    rollout_restart(cfg.server_deployment, cfg.namespace, env)
    wait_for_deployment_available(
        cfg.server_deployment, cfg.namespace, env, timeout=cfg.wait_timeout
    )
    print("Argo CD installed and configured.")


def wait_for_admin_secret(
    cfg: Config,
    env: dict[str, str],
    *,
    sleep: typ.Callable[[float], None] = time.sleep,
) -> int:
    """Block until the initial admin secret exists.

    There is deliberately no upper bound: Argo CD always creates the secret
    once its server has started.

    Returns
    -------
    int
        The number of polls that found the secret missing.

    """
    misses = 0
    while not secret_exists(cfg.admin_secret_name, cfg.namespace, env):
        misses += 1
        print("Waiting for the Argo CD admin secret...")
        sleep(cfg.secret_poll_interval)
    return misses


def retrieve_admin_password(
    cfg: Config,
    env: dict[str, str],
    *,
    sleep: typ.Callable[[float], None] = time.sleep,
) -> str:
    """Wait for the initial admin secret and return the decoded password."""
    print("Retrieving Argo CD admin password...")
    wait_for_admin_secret(cfg, env, sleep=sleep)
    return read_secret_field(cfg.admin_secret_name, "password", cfg.namespace, env)


def _login_command(cfg: Config, port: int, password: str) -> list[str]:
    return [
        "argocd",
        "login",
        f"localhost:{port}",
        "--username",
        cfg.admin_username,
        "--password",
        password,
        "--insecure",
    ]


def login(
    cfg: Config,
    port: int,
    password: str,
    *,
    sleep: typ.Callable[[float], None] = time.sleep,
) -> bool:
    """Log the argocd CLI in through the tunnel on ``port``.

    Parameters
    ----------
    cfg : Config
        Supplies the username and the retry policy.
    port : int
        Local tunnel port discovered for this run.
    password : str
        Admin password read from the cluster.
    sleep : Callable[[float], None], optional
        Delay function used between attempts.

    Returns
    -------
    bool
        True once an attempt succeeds, False after ``cfg.login_attempts``
        failures.

    """
    print("Logging in to Argo CD...")
    for attempt in range(1, cfg.login_attempts + 1):
        try:
            # S603: argocd via PATH is standard; args from Config
            result = subprocess.run(  # noqa: S603
                _login_command(cfg, port, password),
                check=False,
                timeout=_ARGOCD_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            succeeded = False
        else:
            succeeded = result.returncode == 0

        if succeeded:
            print("Logged in to Argo CD.")
            return True

        log_warning(
            logger,
            "Login attempt %d/%d failed",
            attempt,
            cfg.login_attempts,
        )
        if attempt < cfg.login_attempts:
            sleep(cfg.login_retry_delay)

    return False


def add_repository(cfg: Config) -> bool:
    """Register ``cfg.repo_url`` with Argo CD.

    Returns
    -------
    bool
        False when the CLI refused, which usually means the repository is
        already registered.

    """
    print(f"Adding repository {cfg.repo_url}...")
    # S603/S607: argocd via PATH is standard; URL from Config
    result = subprocess.run(  # noqa: S603
        ["argocd", "repo", "add", cfg.repo_url],  # noqa: S607
        check=False,
        timeout=_ARGOCD_TIMEOUT,
    )
    if result.returncode != 0:
        log_info(logger, "Repository %s may already be registered", cfg.repo_url)
        print("Repository may already exist.")
        return False

    print("Repository added.")
    return True


def create_application(cfg: Config) -> None:
    """Declare the application in Argo CD."""
    print(f"Creating application {cfg.app_name}...")
    # S603/S607: argocd via PATH is standard; args from Config
    subprocess.run(  # noqa: S603
        [  # noqa: S607
            "argocd",
            "app",
            "create",
            cfg.app_name,
            "--repo",
            cfg.repo_url,
            "--path",
            cfg.app_path,
            "--dest-server",
            cfg.dest_server,
            "--dest-namespace",
            cfg.dest_namespace,
        ],
        check=True,
        timeout=_ARGOCD_TIMEOUT,
    )
    print("Application created.")


def sync_application(cfg: Config) -> None:
    """Trigger a sync of the application."""
    print(f"Syncing application {cfg.app_name}...")
    # S603/S607: argocd via PATH is standard; name from Config
    subprocess.run(  # noqa: S603
        ["argocd", "app", "sync", cfg.app_name],  # noqa: S607
        check=True,
        timeout=_ARGOCD_TIMEOUT * 5,
    )
    print("Application synced.")


def manual_completion_commands(cfg: Config, port: int, password: str) -> list[str]:
    """Return the commands that finish the bootstrap by hand."""
    return [
        " ".join([*_login_command(cfg, port, password), "--grpc-web"]),
        f"argocd repo add {cfg.repo_url}",
        (
            f"argocd app create {cfg.app_name} --repo {cfg.repo_url} "
            f"--path {cfg.app_path} --dest-server {cfg.dest_server} "
            f"--dest-namespace {cfg.dest_namespace}"
        ),
        f"argocd app sync {cfg.app_name}",
    ]
