"""Kubernetes resource operations used while installing Argo CD.

All functions take an environment dictionary with KUBECONFIG set so kubectl
targets the k3d cluster created for this run.

Examples
--------
Upsert a namespace and apply a remote manifest into it:

    env = kubeconfig_env("mycluster")
    create_namespace("argocd", env)
    apply_manifest_url(INSTALL_URL, "argocd", env)

Read the generated admin password:

    password = read_secret_field(
        "argocd-initial-admin-secret", "password", "argocd", env
    )

"""

from __future__ import annotations

import json
import re
import subprocess

from k3d_gitops.logging import get_logger, log_info
from k3d_gitops.validation import b64decode_k8s_secret_field

# Kubernetes secret keys must contain only alphanumeric, dot, underscore, or hyphen
_SECRET_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

# Timeout bounds for kubectl wait operations (in seconds).
_MIN_WAIT_TIMEOUT = 1
_MAX_WAIT_TIMEOUT = 3600

logger = get_logger(__name__)


def _ensure_valid_wait_timeout(timeout: int) -> None:
    if not _MIN_WAIT_TIMEOUT <= timeout <= _MAX_WAIT_TIMEOUT:
        msg = (
            f"timeout must be between {_MIN_WAIT_TIMEOUT} and "
            f"{_MAX_WAIT_TIMEOUT} seconds, got {timeout}"
        )
        raise ValueError(msg)


def create_namespace(namespace: str, env: dict[str, str]) -> None:
    """Create a Kubernetes namespace idempotently.

    Uses the dry-run + apply pattern so an existing namespace is left as is.
    """
    # S603/S607: kubectl via PATH is standard; namespace from Config
    result = subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "create",
            "namespace",
            namespace,
            "--dry-run=client",
            "-o",
            "yaml",
        ],
        capture_output=True,
        text=True,
        check=True,
        env=env,
        timeout=30,
    )
    subprocess.run(
        ["kubectl", "apply", "-f", "-"],  # noqa: S607
        input=result.stdout,
        text=True,
        check=True,
        env=env,
        timeout=30,
    )


def apply_manifest_url(url: str, namespace: str, env: dict[str, str]) -> None:
    """Apply a remote manifest into ``namespace``."""
    # S603/S607: kubectl via PATH is standard; URL from Config
    subprocess.run(  # noqa: S603
        ["kubectl", "apply", "-n", namespace, "-f", url],  # noqa: S607
        check=True,
        env=env,
        timeout=300,
    )


def wait_for_deployment_available(
    deployment: str, namespace: str, env: dict[str, str], timeout: int = 300
) -> None:
    """Block until a deployment reports the Available condition.

    Raises
    ------
    ValueError
        If timeout is outside the valid range (1-3600 seconds).

    """
    _ensure_valid_wait_timeout(timeout)
    # S603/S607: kubectl via PATH is standard; names from Config
    subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "wait",
            "--for=condition=available",
            f"--timeout={timeout}s",
            f"deployment/{deployment}",
            "-n",
            namespace,
        ],
        check=True,
        env=env,
        timeout=timeout + 30,
    )


def patch_configmap_json(
    name: str, namespace: str, patch: list[dict[str, object]], env: dict[str, str]
) -> bool:
    """Apply a JSON patch to a ConfigMap, tolerating a missing target path.

    Returns
    -------
    bool
        True when the patch applied, False when kubectl rejected it (for
        example because the path being removed does not exist).

    """
    # S603/S607: kubectl via PATH is standard; patch built internally
    result = subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "patch",
            "configmap",
            name,
            "-n",
            namespace,
            "--type=json",
            f"-p={json.dumps(patch)}",
        ],
        capture_output=True,
        text=True,
        env=env,
        timeout=30,
    )
    if result.returncode != 0:
        log_info(
            logger,
            "Patch of configmap %s/%s not applied: %s",
            namespace,
            name,
            (result.stderr or "").strip(),
        )
        return False
    return True


def rollout_restart(deployment: str, namespace: str, env: dict[str, str]) -> None:
    """Restart a deployment's pods through a rollout."""
    # S603/S607: kubectl via PATH is standard; names from Config
    subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "rollout",
            "restart",
            "deployment",
            deployment,
            "-n",
            namespace,
        ],
        check=True,
        env=env,
        timeout=60,
    )


def wait_for_pods_ready(
    selector: str, namespace: str, env: dict[str, str], timeout: int = 300
) -> None:
    """Wait for pods matching a label selector to be Ready.

    Raises
    ------
    ValueError
        If timeout is outside the valid range (1-3600 seconds).

    """
    _ensure_valid_wait_timeout(timeout)
    # Add buffer to subprocess timeout beyond kubectl's --timeout
    # S603/S607: kubectl via PATH is standard; selector/namespace from Config
    subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "wait",
            "--for=condition=Ready",
            "pod",
            f"--selector={selector}",
            f"--namespace={namespace}",
            f"--timeout={timeout}s",
        ],
        check=True,
        env=env,
        timeout=timeout + 30,
    )


def secret_exists(secret_name: str, namespace: str, env: dict[str, str]) -> bool:
    """Return True when the named secret can be read from ``namespace``."""
    # S603/S607: kubectl via PATH is standard; names from Config
    result = subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "get",
            "secret",
            secret_name,
            f"--namespace={namespace}",
        ],
        capture_output=True,
        env=env,
        timeout=30,
    )
    return result.returncode == 0


def read_secret_field(
    secret_name: str, field: str, namespace: str, env: dict[str, str]
) -> str:
    """Read and decode a field from a Kubernetes secret.

    Parameters
    ----------
    secret_name : str
        Name of the Kubernetes secret.
    field : str
        Key within the secret's data section. Dotted keys such as ``ca.crt``
        are supported.
    namespace : str
        Kubernetes namespace containing the secret.
    env : dict[str, str]
        Environment dict with KUBECONFIG set.

    Returns
    -------
    str
        The decoded UTF-8 string value of the secret field.

    Raises
    ------
    ValueError
        If field is empty, contains invalid characters, or the secret field
        value is empty or missing.
    SecretDecodeError
        If the stored value is not valid base64 text.

    """
    if not field:
        msg = "field cannot be empty"
        raise ValueError(msg)
    if not _SECRET_KEY_PATTERN.match(field):
        msg = (
            f"field '{field}' contains invalid characters; "
            "only alphanumeric, dot, underscore, and hyphen are allowed"
        )
        raise ValueError(msg)

    # Quote the field name to support dotted keys like "ca.crt"
    jsonpath = f"jsonpath={{.data['{field}']}}"

    # S603/S607: kubectl via PATH is standard; args from Config or hardcoded
    result = subprocess.run(  # noqa: S603
        [  # noqa: S607
            "kubectl",
            "get",
            "secret",
            secret_name,
            f"--namespace={namespace}",
            "-o",
            jsonpath,
        ],
        capture_output=True,
        text=True,
        check=True,
        env=env,
        timeout=30,
    )

    output = result.stdout.strip()
    if not output:
        msg = (
            f"Secret '{secret_name}' field '{field}' is empty or missing "
            f"in namespace '{namespace}'"
        )
        raise ValueError(msg)

    return b64decode_k8s_secret_field(output)
