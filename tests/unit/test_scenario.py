"""Tests for the subpath isolation scenario."""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from efs_csi_e2e.exceptions import CleanupError, PodFailedError, WaitTimeoutError
from efs_csi_e2e.scenario import (
    MKDIR_COMMAND,
    CleanupStack,
    create_volume_binding,
    run_path_isolation,
)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("efs_csi_e2e.waiting.time.sleep", lambda seconds: None)


def pods_in_phases(*phases: str) -> list[client.V1Pod]:
    return [client.V1Pod(status=client.V1PodStatus(phase=p)) for p in phases]


def deletions(core_api: MagicMock) -> list[tuple]:
    """(method, name) of every delete call, in order."""
    return [
        (name, args[0]) for name, args, _ in core_api.method_calls if name.startswith("delete_")
    ]


class TestCleanupStack:
    """Test CleanupStack."""

    def test_runs_in_reverse_order(self) -> None:
        ran = []
        stack = CleanupStack()
        for n in (1, 2, 3):
            stack.push(f"step {n}", lambda n=n: ran.append(n))

        stack.run()

        assert ran == [3, 2, 1]
        assert len(stack) == 0

    def test_continues_after_failure(self) -> None:
        """Every action runs and failures are collected."""
        ran = []
        stack = CleanupStack()
        stack.push("first", lambda: ran.append("first"))
        stack.push("broken", MagicMock(side_effect=RuntimeError("boom")))
        stack.push("last", lambda: ran.append("last"))

        with pytest.raises(CleanupError) as exc_info:
            stack.run()

        assert ran == ["last", "first"]
        assert [desc for desc, _ in exc_info.value.errors] == ["broken"]

    def test_context_manager_raises_cleanup_error(self) -> None:
        with pytest.raises(CleanupError):
            with CleanupStack() as stack:
                stack.push("broken", MagicMock(side_effect=RuntimeError("boom")))

    def test_body_error_takes_precedence(self) -> None:
        """A failing body is reported, not the cleanup that followed it."""
        cleanup = MagicMock(side_effect=RuntimeError("cleanup"))
        with pytest.raises(ValueError, match="body"):
            with CleanupStack() as stack:
                stack.push("broken", cleanup)
                raise ValueError("body")
        cleanup.assert_called_once()


class TestCreateVolumeBinding:
    """Test create_volume_binding function."""

    def test_creates_claim_then_volume(self, core_api) -> None:
        cleanups = CleanupStack()
        binding = create_volume_binding(core_api, "ns1", "ns1-a", "fs-1", "/a", cleanups)

        core_api.create_namespaced_persistent_volume_claim.assert_called_once_with(
            "ns1", binding.claim
        )
        core_api.create_persistent_volume.assert_called_once_with(binding.volume)
        assert len(cleanups) == 2

    def test_cleanup_deletes_volume_then_claim(self, core_api) -> None:
        cleanups = CleanupStack()
        create_volume_binding(core_api, "ns1", "ns1-a", "fs-1", "/a", cleanups)

        cleanups.run()

        assert deletions(core_api) == [
            ("delete_persistent_volume", "ns1-a"),
            ("delete_namespaced_persistent_volume_claim", "ns1-a"),
        ]

    def test_cleanup_ignores_already_deleted(self, core_api) -> None:
        core_api.delete_persistent_volume.side_effect = ApiException(status=404)
        cleanups = CleanupStack()
        create_volume_binding(core_api, "ns1", "ns1-a", "fs-1", "", cleanups)

        cleanups.run()  # No exception

    def test_cleanup_reports_other_errors(self, core_api) -> None:
        core_api.delete_persistent_volume.side_effect = ApiException(status=500)
        cleanups = CleanupStack()
        create_volume_binding(core_api, "ns1", "ns1-a", "fs-1", "", cleanups)

        with pytest.raises(CleanupError):
            cleanups.run()
        core_api.delete_namespaced_persistent_volume_claim.assert_called_once()

    def test_claim_failure_registers_nothing(self, core_api) -> None:
        core_api.create_namespaced_persistent_volume_claim.side_effect = ApiException(status=409)
        cleanups = CleanupStack()

        with pytest.raises(ApiException):
            create_volume_binding(core_api, "ns1", "ns1-a", "fs-1", "", cleanups)

        assert len(cleanups) == 0
        core_api.create_persistent_volume.assert_not_called()


class TestRunPathIsolation:
    """Test run_path_isolation function."""

    def test_success(self, core_api) -> None:
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Running")

        bindings = run_path_isolation(core_api, "ns1", "fs-1")

        assert [b.handle for b in bindings] == ["fs-1:/a", "fs-1:/b"]
        volumes = [c.args[0] for c in core_api.create_persistent_volume.call_args_list]
        assert [v.spec.csi.volume_handle for v in volumes] == ["fs-1", "fs-1:/a", "fs-1:/b"]
        assert [v.metadata.name for v in volumes] == ["ns1-root", "ns1-a", "ns1-b"]

    def test_pods(self, core_api) -> None:
        """First pod makes the directories, second mounts both subpaths."""
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Running")

        run_path_isolation(core_api, "ns1", "fs-1")

        mkdir_pod, mount_pod = [c.args[1] for c in core_api.create_namespaced_pod.call_args_list]
        assert mkdir_pod.spec.containers[0].args == ["-c", MKDIR_COMMAND]
        assert [v.persistent_volume_claim.claim_name for v in mkdir_pod.spec.volumes] == [
            "ns1-root"
        ]
        assert [v.persistent_volume_claim.claim_name for v in mount_pod.spec.volumes] == [
            "ns1-a",
            "ns1-b",
        ]

    def test_mkdir_command_creates_both_paths(self) -> None:
        assert "mkdir -p /mnt/volume1/a" in MKDIR_COMMAND
        assert "mkdir -p /mnt/volume1/b" in MKDIR_COMMAND

    def test_everything_deleted_in_reverse(self, core_api) -> None:
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Running")

        run_path_isolation(core_api, "ns1", "fs-1")

        assert deletions(core_api) == [
            ("delete_namespaced_pod", "pod-2"),
            ("delete_persistent_volume", "ns1-b"),
            ("delete_namespaced_persistent_volume_claim", "ns1-b"),
            ("delete_persistent_volume", "ns1-a"),
            ("delete_namespaced_persistent_volume_claim", "ns1-a"),
            ("delete_namespaced_pod", "pod-1"),
            ("delete_persistent_volume", "ns1-root"),
            ("delete_namespaced_persistent_volume_claim", "ns1-root"),
        ]

    def test_mkdir_pod_failure(self, core_api) -> None:
        """A failed first pod fails the scenario and cleans up what exists."""
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Pending", "Failed")

        with pytest.raises(PodFailedError) as exc_info:
            run_path_isolation(core_api, "ns1", "fs-1", timeout=60)

        assert exc_info.value.name == "pod-1"
        assert exc_info.value.expected == "Succeeded"
        assert core_api.create_persistent_volume.call_count == 1
        assert [d[1] for d in deletions(core_api)] == ["pod-1", "ns1-root", "ns1-root"]

    def test_mount_pod_exits(self, core_api) -> None:
        """The idle pod must not terminate."""
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Succeeded")

        with pytest.raises(PodFailedError) as exc_info:
            run_path_isolation(core_api, "ns1", "fs-1")

        assert exc_info.value.name == "pod-2"
        assert exc_info.value.expected == "Running"

    def test_pod_never_starts(self, core_api) -> None:
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Pending")

        with pytest.raises(WaitTimeoutError) as exc_info:
            run_path_isolation(core_api, "ns1", "fs-1", timeout=0)

        assert exc_info.value.last_state == "Pending"
        assert len(deletions(core_api)) == 8

    def test_cleanup_failure_after_success(self, core_api) -> None:
        core_api.read_namespaced_pod.side_effect = pods_in_phases("Succeeded", "Running")
        core_api.delete_namespaced_pod.side_effect = ApiException(status=500)

        with pytest.raises(CleanupError) as exc_info:
            run_path_isolation(core_api, "ns1", "fs-1")

        assert len(exc_info.value.errors) == 2
        assert len(deletions(core_api)) == 8
