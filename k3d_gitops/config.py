"""Configuration for the local k3d + Argo CD bootstrap."""

from __future__ import annotations

import dataclasses
from pathlib import Path


@dataclasses.dataclass(frozen=True, slots=True)
class Config:
    """Configuration for the local k3d cluster and its Argo CD bootstrap.

    File paths are relative to the current working directory unless absolute.

    Attributes:
        port_mappings: k3d ``-p`` values exposing the load balancer's HTTP and
            HTTPS ports on the host.
        base_port: First candidate local port for the Argo CD tunnel. The
            search window covers ``port_window`` ports starting here.
        admin_secret_name: Kubernetes Secret holding the generated admin
            password (S105 false positive, this is a resource name).
        argocd_config_dir: Local configuration directory of the argocd CLI,
            removed wholesale on reset.

    """

    cluster_name: str = "mycluster"
    servers: int = 1
    agents: int = 1
    port_mappings: tuple[str, ...] = ("8080:80@loadbalancer", "8443:443@loadbalancer")
    namespace: str = "argocd"
    install_manifest_url: str = (
        "https://raw.githubusercontent.com/argoproj/argo-cd/stable/manifests/install.yaml"
    )
    server_deployment: str = "argocd-server"
    server_service: str = "argocd-server"
    server_selector: str = "app.kubernetes.io/name=argocd-server"
    settings_configmap: str = "argocd-cm"
    # S105 false positive: Kubernetes Secret resource name, not a password.
    admin_secret_name: str = "argocd-initial-admin-secret"  # noqa: S105
    admin_username: str = "admin"
    base_port: int = 8081
    port_window: int = 51
    remote_port: int = 443
    forward_retries: int = 30
    forward_retry_delay: float = 2.0
    probe_timeout: float = 2.0
    login_attempts: int = 5
    login_retry_delay: float = 5.0
    secret_poll_interval: float = 5.0
    wait_timeout: int = 300
    password_file: Path = dataclasses.field(
        default_factory=lambda: Path("argocd-password.txt")
    )
    connection_file: Path = dataclasses.field(
        default_factory=lambda: Path("argocd-connection.txt")
    )
    argocd_config_dir: Path = dataclasses.field(
        default_factory=lambda: Path.home() / ".argocd"
    )
    repo_url: str = "https://github.com/mustafaUrl/Inception-of-Things"
    app_name: str = "my-app"
    app_path: str = "p3/manifests"
    dest_server: str = "https://kubernetes.default.svc"
    dest_namespace: str = "default"

    @property
    def port_forward_pattern(self) -> str:
        """Return the process pattern matching this tool's port-forwards."""
        return f"kubectl port-forward.*{self.server_service}"

    def argocd_url(self, port: int) -> str:
        """Return the local Argo CD UI URL for a tunnel port."""
        return f"https://localhost:{port}"
