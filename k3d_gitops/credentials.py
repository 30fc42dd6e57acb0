"""Local persistence of the Argo CD admin credential.

Two files are written next to where the tool runs: a bare password file and
a ``KEY=value`` connection-info file with four fixed keys. Both are removed
by the reset command.
"""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path

_PORT_KEY = "ARGOCD_PORT"
_URL_KEY = "ARGOCD_URL"
_USERNAME_KEY = "ARGOCD_USERNAME"
# S105 false positive: key name in the connection-info file.
_PASSWORD_KEY = "ARGOCD_PASSWORD"  # noqa: S105

CONNECTION_KEYS = (_PORT_KEY, _URL_KEY, _USERNAME_KEY, _PASSWORD_KEY)


@dataclasses.dataclass(frozen=True, slots=True)
class Credentials:
    """Admin login for the Argo CD API server."""

    username: str
    password: str


@dataclasses.dataclass(frozen=True, slots=True)
class ConnectionInfo:
    """Everything needed to reach the Argo CD UI through the local tunnel."""

    port: int
    url: str
    username: str
    password: str

    def to_text(self) -> str:
        """Render the ``KEY=value`` file contents."""
        lines = [
            f"{_PORT_KEY}={self.port}",
            f"{_URL_KEY}={self.url}",
            f"{_USERNAME_KEY}={self.username}",
            f"{_PASSWORD_KEY}={self.password}",
        ]
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text: str) -> ConnectionInfo:
        """Parse connection-info file contents.

        Blank lines and unknown keys are ignored. Values may contain ``=``.

        Raises
        ------
        ValueError
            If a required key is missing or the port is not an integer.

        """
        values: dict[str, str] = {}
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or "=" not in line:
                continue
            key, _, value = line.partition("=")
            values[key.strip()] = value

        missing = [key for key in CONNECTION_KEYS if key not in values]
        if missing:
            msg = f"connection info is missing keys: {', '.join(missing)}"
            raise ValueError(msg)

        return cls(
            port=int(values[_PORT_KEY]),
            url=values[_URL_KEY],
            username=values[_USERNAME_KEY],
            password=values[_PASSWORD_KEY],
        )


def write_password_file(path: Path, password: str) -> None:
    """Write the bare admin password followed by a newline."""
    path.write_text(f"{password}\n", encoding="utf-8")


def write_connection_info(path: Path, info: ConnectionInfo) -> None:
    """Write ``info`` as a ``KEY=value`` file."""
    path.write_text(info.to_text(), encoding="utf-8")


def read_connection_info(path: Path) -> ConnectionInfo:
    """Read a connection-info file written by :func:`write_connection_info`."""
    return ConnectionInfo.from_text(path.read_text(encoding="utf-8"))


def remove_file_if_present(path: Path) -> bool:
    """Delete ``path`` if it is a file; return whether anything was removed."""
    if not path.is_file():
        return False
    path.unlink(missing_ok=True)
    return True
