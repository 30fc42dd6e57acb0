"""Local k3d cluster and Argo CD bootstrap.

This package stands up a local k3d cluster, installs Argo CD into it, and
registers a GitOps application against a fixed repository. The primary
entrypoints are:

- setup_environment: Create the cluster, install Argo CD, sync the app
- reset_environment: Remove the cluster and all local Argo CD state
- confirm_reset: Interactive y/N gate in front of reset_environment

For lower-level operations, import directly from submodules:

- k3d_gitops.k3d: k3d cluster lifecycle operations
- k3d_gitops.k8s: kubectl resource operations
- k3d_gitops.argocd: Argo CD installation and CLI operations
- k3d_gitops.ports: Local port discovery
- k3d_gitops.port_forward: Port-forward supervision
- k3d_gitops.credentials: Password and connection-info files

"""

from __future__ import annotations

from k3d_gitops.config import Config
from k3d_gitops.orchestration import (
    confirm_reset,
    reset_environment,
    setup_environment,
)
from k3d_gitops.validation import (
    BootstrapError,
    ExecutableNotFoundError,
    PortUnavailableError,
    SecretDecodeError,
    TunnelError,
)

__all__ = [
    "BootstrapError",
    "Config",
    "ExecutableNotFoundError",
    "PortUnavailableError",
    "SecretDecodeError",
    "TunnelError",
    "confirm_reset",
    "reset_environment",
    "setup_environment",
]
