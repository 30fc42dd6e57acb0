"""Exceptions and validation helpers shared across the bootstrap package.

Custom Exceptions
-----------------
- ``BootstrapError``: Base exception for all package errors
- ``ExecutableNotFoundError``: A required CLI tool is missing
- ``SecretDecodeError``: The admin secret could not be decoded
- ``PortUnavailableError``: No free port was found in the candidate window
- ``TunnelError``: The port-forward is used before it was started

Examples
--------
Verify the external tools before touching anything:

    require_tools(("k3d", "kubectl", "argocd"))

Decode a value read from a Kubernetes secret:

    password = b64decode_k8s_secret_field("czNjcjN0")

"""

from __future__ import annotations

import base64
import binascii
import shutil
import typing as typ


class BootstrapError(Exception):
    """Base exception for all k3d_gitops errors."""


class ExecutableNotFoundError(BootstrapError):
    """Required CLI tool is not installed."""


class SecretDecodeError(BootstrapError):
    """Failed to decode a Kubernetes secret field."""


class PortUnavailableError(BootstrapError):
    """Every port in the candidate window is in use."""


class TunnelError(BootstrapError):
    """The local tunnel to the Argo CD server is not available."""


def require_exe(name: str) -> None:
    """Verify a CLI tool is available in PATH.

    Parameters
    ----------
    name : str
        Name of the executable to check for.

    Raises
    ------
    ExecutableNotFoundError
        If the executable is not found in PATH.

    """
    if shutil.which(name) is None:
        msg = f"Required executable '{name}' not found in PATH"
        raise ExecutableNotFoundError(msg)


def require_tools(names: typ.Iterable[str]) -> None:
    """Verify every tool in ``names``, failing on the first missing one."""
    for name in names:
        require_exe(name)


def b64decode_k8s_secret_field(b64_text: str) -> str:
    """Decode a base64-encoded Kubernetes secret value to UTF-8 text.

    Raises
    ------
    SecretDecodeError
        If the input is not valid base64 or not valid UTF-8.

    """
    try:
        return base64.b64decode(b64_text, validate=True).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        msg = f"Failed to decode secret field: {e}"
        raise SecretDecodeError(msg) from e
