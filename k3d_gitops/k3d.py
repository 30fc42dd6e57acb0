"""k3d cluster lifecycle operations.

This module wraps the k3d CLI to create, delete, and inspect the local
cluster that hosts Argo CD, and to produce a kubeconfig targeting it.

Public API
----------
- ``cluster_exists``: Check whether a named cluster exists.
- ``create_k3d_cluster``: Create a cluster with load balancer port mappings.
- ``delete_k3d_cluster``: Delete an existing cluster.
- ``recreate_k3d_cluster``: Delete a same-named cluster, then create anew.
- ``write_kubeconfig``: Write and return the kubeconfig path for a cluster.
- ``kubeconfig_env``: Return environment dict with KUBECONFIG set.

Examples
--------
Replace whatever cluster currently carries the configured name:

    recreate_k3d_cluster(Config())

Run kubectl against it:

    env = kubeconfig_env("mycluster")
    subprocess.run(["kubectl", "get", "pods", "-A"], env=env)

"""

from __future__ import annotations

import json
import os
import subprocess
import typing as typ
from pathlib import Path

from k3d_gitops.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from k3d_gitops.config import Config

# Default timeout for quick k3d subprocess operations (seconds)
_K3D_SUBPROCESS_TIMEOUT = 60

logger = get_logger(__name__)


def _run_k3d_json(args: list[str], *, timeout: float | None = None) -> typ.Any:  # noqa: ANN401
    """Run a k3d command and parse JSON output, returning None on any failure."""
    try:
        result = subprocess.run(  # noqa: S603
            # k3d is expected on PATH; shell=False mitigates injection
            ["k3d", *args, "-o", "json"],  # noqa: S607
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout or _K3D_SUBPROCESS_TIMEOUT,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return None
    else:
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError:
            return None


def cluster_exists(cluster_name: str) -> bool:
    """Check if a k3d cluster already exists.

    Parameters
    ----------
    cluster_name : str
        Name of the cluster to check for.

    Returns
    -------
    bool
        True if the cluster is listed by k3d. False when it is absent, when
        k3d is unavailable, or when its output cannot be parsed.

    """
    clusters = _run_k3d_json(["cluster", "list"])
    if not isinstance(clusters, list):
        return False
    return any(cluster.get("name") == cluster_name for cluster in clusters)


def create_k3d_cluster(
    cluster_name: str,
    *,
    servers: int = 1,
    agents: int = 1,
    port_mappings: typ.Sequence[str] = (),
    timeout: float = 300,
) -> None:
    """Create a k3d cluster.

    Parameters
    ----------
    cluster_name : str
        Name for the new cluster.
    servers : int, default 1
        Number of server nodes. Must be >= 1.
    agents : int, default 1
        Number of agent nodes. Must be >= 0.
    port_mappings : Sequence[str]
        Values passed to ``-p``, e.g. ``"8080:80@loadbalancer"``.
    timeout : float, default 300
        Maximum time in seconds to wait for creation.

    Raises
    ------
    ValueError
        If the node counts are invalid.
    RuntimeError
        If cluster creation times out or fails.

    """
    if servers < 1:
        msg = f"servers must be >= 1, got {servers}"
        raise ValueError(msg)
    if agents < 0:
        msg = f"agents must be >= 0, got {agents}"
        raise ValueError(msg)

    cmd = [
        "k3d",
        "cluster",
        "create",
        cluster_name,
        "--servers",
        str(servers),
        "--agents",
        str(agents),
    ]
    for mapping in port_mappings:
        cmd.extend(["-p", mapping])

    try:
        # k3d is expected on PATH; shell=False mitigates injection
        subprocess.run(cmd, check=True, timeout=timeout)  # noqa: S603
    except subprocess.TimeoutExpired as e:
        msg = f"k3d cluster creation timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d cluster creation failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e


def delete_k3d_cluster(cluster_name: str, timeout: float = 120) -> None:
    """Delete a k3d cluster.

    Raises
    ------
    RuntimeError
        If cluster deletion fails or times out.

    """
    try:
        subprocess.run(  # noqa: S603
            # k3d is expected on PATH; shell=False mitigates injection
            ["k3d", "cluster", "delete", cluster_name],  # noqa: S607
            check=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        msg = f"k3d cluster deletion timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d cluster deletion failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e


def recreate_k3d_cluster(cfg: Config) -> None:
    """Create the configured cluster, deleting a same-named one first."""
    if cluster_exists(cfg.cluster_name):
        print(f"Deleting existing cluster '{cfg.cluster_name}'...")
        log_info(logger, "Cluster %s already exists; deleting it", cfg.cluster_name)
        delete_k3d_cluster(cfg.cluster_name)

    print(f"Creating k3d cluster '{cfg.cluster_name}'...")
    create_k3d_cluster(
        cfg.cluster_name,
        servers=cfg.servers,
        agents=cfg.agents,
        port_mappings=cfg.port_mappings,
    )
    print("K3D cluster created.")


def _run_k3d_kubeconfig_write(cluster_name: str, timeout: float) -> str:
    """Run k3d kubeconfig write and return the path string."""
    try:
        result = subprocess.run(  # noqa: S603
            # k3d is expected on PATH; shell=False mitigates injection
            ["k3d", "kubeconfig", "write", cluster_name],  # noqa: S607
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        msg = f"k3d kubeconfig write timed out after {timeout} seconds"
        raise RuntimeError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = f"k3d kubeconfig write failed for '{cluster_name}': {e}"
        raise RuntimeError(msg) from e

    kubeconfig_path = result.stdout.strip()
    if not kubeconfig_path:
        msg = f"k3d returned empty kubeconfig path for cluster '{cluster_name}'"
        raise RuntimeError(msg)

    return kubeconfig_path


def write_kubeconfig(cluster_name: str, timeout: float = 30) -> Path:
    """Write and return the kubeconfig path for a k3d cluster.

    Raises
    ------
    RuntimeError
        If the kubeconfig path is empty, the file was not created, or the
        operation times out.

    """
    path = Path(_run_k3d_kubeconfig_write(cluster_name, timeout))
    if not path.exists():
        msg = f"Kubeconfig file was not created at {path}"
        raise RuntimeError(msg)

    return path


def kubeconfig_env(cluster_name: str) -> dict[str, str]:
    """Return a copy of the environment with KUBECONFIG set for the cluster."""
    env = dict(os.environ)
    env["KUBECONFIG"] = str(write_kubeconfig(cluster_name))
    return env
