"""Per-run state threaded through the setup steps."""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    import types

    from k3d_gitops.config import Config
    from k3d_gitops.credentials import Credentials
    from k3d_gitops.port_forward import PortForward


@dataclasses.dataclass(slots=True)
class Session:
    """State accumulated by one setup run.

    Attributes:
        env: Environment with KUBECONFIG pointing at the run's cluster.
        port: Local tunnel port, once discovered.
        credentials: Admin login, once the password is retrieved.
        forward: The tunnel owned by this run. Closing the session stops it.

    """

    cfg: Config
    env: dict[str, str] = dataclasses.field(default_factory=dict)
    port: int | None = None
    credentials: Credentials | None = None
    forward: PortForward | None = None
    closed: bool = False

    @property
    def url(self) -> str | None:
        """Return the Argo CD UI URL, or None before a port is chosen."""
        return None if self.port is None else self.cfg.argocd_url(self.port)

    def close(self) -> None:
        """Release the tunnel. Only the first call has any effect."""
        if self.closed:
            return
        self.closed = True
        if self.forward is not None:
            self.forward.stop()

    def __enter__(self) -> Session:
        """Return the open session."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        """Close the session on every exit path."""
        self.close()
