"""Unit tests for Argo CD installation and CLI operations."""

from __future__ import annotations

import base64
import subprocess
import typing as typ

import pytest

from k3d_gitops.argocd import (
    add_repository,
    create_application,
    install_argocd,
    login,
    manual_completion_commands,
    retrieve_admin_password,
    sync_application,
    wait_for_admin_secret,
)

if typ.TYPE_CHECKING:
    from k3d_gitops.config import Config
    from tests.doubles import SubprocessRecorder


def _secret_after(misses: int) -> typ.Callable[[list[str]], tuple[int, str]]:
    """Return a responder reporting the secret missing ``misses`` times."""
    seen = {"count": 0}

    def responder(_args: list[str]) -> tuple[int, str]:
        seen["count"] += 1
        return (1, "") if seen["count"] <= misses else (0, "")

    return responder


class TestInstallArgocd:
    """Tests for install_argocd."""

    def test_runs_install_steps_in_order(
        self,
        recorder: SubprocessRecorder,
        cfg: Config,
        test_env: dict[str, str],
    ) -> None:
        """Namespace, apply, wait, patch, restart, wait should run in order."""
        install_argocd(cfg, test_env)

        order = [
            recorder.index_of("kubectl", "create", "namespace", "argocd"),
            recorder.index_of("kubectl", "apply", "-n", "argocd", "-f"),
            recorder.index_of("kubectl", "wait", "--for=condition=available"),
            recorder.index_of("kubectl", "patch", "configmap", "argocd-cm"),
            recorder.index_of("kubectl", "rollout", "restart", "deployment"),
        ]
        assert order == sorted(order)
        waits = [c for c in recorder.calls if c[:2] == ("kubectl", "wait")]
        assert len(waits) == 2

    def test_missing_exclusions_is_not_fatal(
        self,
        recorder: SubprocessRecorder,
        cfg: Config,
        test_env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A rejected patch should be reported and installation continue."""
        recorder.respond("kubectl", "patch", returncode=1)

        install_argocd(cfg, test_env)

        assert recorder.has_call("kubectl", "rollout", "restart")
        assert "nothing to remove" in capsys.readouterr().out

    def test_failed_apply_aborts(
        self,
        recorder: SubprocessRecorder,
        cfg: Config,
        test_env: dict[str, str],
    ) -> None:
        """A failing manifest apply should propagate."""
        recorder.respond("kubectl", "apply", "-n", returncode=1)

        with pytest.raises(subprocess.CalledProcessError):
            install_argocd(cfg, test_env)

        assert not recorder.has_call("kubectl", "wait")


class TestAdminSecret:
    """Tests for waiting on and reading the admin secret."""

    def test_polls_until_secret_exists(
        self,
        recorder: SubprocessRecorder,
        cfg: Config,
        test_env: dict[str, str],
    ) -> None:
        """The wait should keep polling at the configured interval."""
        recorder.respond_with(
            "kubectl", "get", "secret", "argocd-initial-admin-secret",
            responder=_secret_after(3),
        )
        sleeps: list[float] = []

        misses = wait_for_admin_secret(cfg, test_env, sleep=sleeps.append)

        assert misses == 3
        assert sleeps == [cfg.secret_poll_interval] * 3

    def test_retrieve_decodes_password(
        self,
        recorder: SubprocessRecorder,
        cfg: Config,
        test_env: dict[str, str],
    ) -> None:
        """The password field should be read and decoded once present."""
        encoded = base64.b64encode(b"Adm1nPass").decode()

        def responder(args: list[str]) -> tuple[int, str]:
            if any(arg.startswith("jsonpath=") for arg in args):
                return 0, encoded
            return 0, ""

        recorder.respond_with("kubectl", "get", "secret", responder=responder)

        password = retrieve_admin_password(cfg, test_env, sleep=lambda _s: None)

        assert password == "Adm1nPass"  # noqa: S105


class TestLogin:
    """Tests for the bounded login retry."""

    def test_uses_discovered_port(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """Login should target the tunnel port it was given."""
        assert login(cfg, 8093, "pw", sleep=lambda _s: None) is True

        assert recorder.calls == [
            (
                "argocd",
                "login",
                "localhost:8093",
                "--username",
                "admin",
                "--password",
                "pw",
                "--insecure",
            )
        ]

    def test_retries_until_success(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """Failed attempts should be retried with the configured delay."""
        attempts = {"count": 0}

        def responder(_args: list[str]) -> tuple[int, str]:
            attempts["count"] += 1
            return (0, "") if attempts["count"] == 3 else (1, "")

        recorder.respond_with("argocd", "login", responder=responder)
        sleeps: list[float] = []

        assert login(cfg, 8081, "pw", sleep=sleeps.append) is True
        assert attempts["count"] == 3
        assert sleeps == [cfg.login_retry_delay] * 2

    def test_gives_up_after_configured_attempts(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """Exhausting the attempts should return False, not raise."""
        recorder.respond("argocd", "login", returncode=20)

        assert login(cfg, 8081, "pw", sleep=lambda _s: None) is False
        assert len(recorder.calls) == cfg.login_attempts


class TestRepositoryAndApplication:
    """Tests for repo add, app create and app sync."""

    def test_add_repository_tolerates_existing(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """A refused repo add should not raise."""
        recorder.respond("argocd", "repo", "add", returncode=1)

        assert add_repository(cfg) is False

    def test_add_repository_success(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """A successful repo add should report True."""
        assert add_repository(cfg) is True
        assert recorder.calls == [("argocd", "repo", "add", cfg.repo_url)]

    def test_create_application_arguments(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """The application should bind repo, path and destination."""
        create_application(cfg)

        assert recorder.calls == [
            (
                "argocd",
                "app",
                "create",
                "my-app",
                "--repo",
                "https://github.com/mustafaUrl/Inception-of-Things",
                "--path",
                "p3/manifests",
                "--dest-server",
                "https://kubernetes.default.svc",
                "--dest-namespace",
                "default",
            )
        ]

    def test_sync_failure_is_fatal(
        self, recorder: SubprocessRecorder, cfg: Config
    ) -> None:
        """A failing sync should propagate."""
        recorder.respond("argocd", "app", "sync", returncode=1)

        with pytest.raises(subprocess.CalledProcessError):
            sync_application(cfg)


class TestManualCompletionCommands:
    """Tests for the degraded-path instructions."""

    def test_commands_use_port_and_password(self, cfg: Config) -> None:
        """Every command needed to finish by hand should be listed."""
        commands = manual_completion_commands(cfg, 8090, "pw")

        assert commands[0] == (
            "argocd login localhost:8090 --username admin --password pw "
            "--insecure --grpc-web"
        )
        assert commands[1] == f"argocd repo add {cfg.repo_url}"
        assert commands[2].startswith("argocd app create my-app")
        assert commands[3] == "argocd app sync my-app"
