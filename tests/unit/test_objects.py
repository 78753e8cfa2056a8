"""Tests for Kubernetes object builders."""

from kubernetes import client

from efs_csi_e2e.deployment import DRIVER_NAME
from efs_csi_e2e.objects import (
    IDLE_COMMAND,
    make_claim,
    make_pod,
    make_volume,
    make_volume_binding,
)


class TestMakeClaim:
    """Test make_claim function."""

    def test_static_rwx_claim(self) -> None:
        claim = make_claim("ns1", "data")

        assert claim.metadata.name == "data"
        assert claim.metadata.namespace == "ns1"
        assert claim.spec.access_modes == ["ReadWriteMany"]
        assert claim.spec.resources.requests == {"storage": "1Gi"}
        assert claim.spec.storage_class_name == ""


class TestMakeVolume:
    """Test make_volume function."""

    def test_root_volume(self) -> None:
        volume = make_volume("data", "fs-0123")

        assert volume.spec.csi.driver == DRIVER_NAME
        assert volume.spec.csi.volume_handle == "fs-0123"
        assert volume.spec.persistent_volume_reclaim_policy == "Retain"
        assert volume.spec.capacity == {"storage": "1Gi"}
        assert volume.spec.access_modes == ["ReadWriteMany"]
        assert volume.spec.storage_class_name is None

    def test_subpath_volume(self) -> None:
        assert make_volume("data-a", "fs-0123", "/a").spec.csi.volume_handle == "fs-0123:/a"


class TestMakeVolumeBinding:
    """Test make_volume_binding function."""

    def test_claim_and_volume_point_at_each_other(self) -> None:
        binding = make_volume_binding("ns1", "ns1-a", "fs-0123", "/a")

        assert binding.claim.spec.volume_name == binding.volume.metadata.name == "ns1-a"
        claim_ref = binding.volume.spec.claim_ref
        assert (claim_ref.namespace, claim_ref.name) == ("ns1", "ns1-a")
        assert binding.handle == "fs-0123:/a"

    def test_bindings_share_one_file_system(self) -> None:
        """Different subpaths give different handles on the same id."""
        handles = [
            make_volume_binding("ns1", f"ns1-{n}", "fs-0123", p).handle
            for n, p in (("root", ""), ("a", "/a"), ("b", "/b"))
        ]
        assert handles == ["fs-0123", "fs-0123:/a", "fs-0123:/b"]


class TestMakePod:
    """Test make_pod function."""

    def test_mounts_each_claim_in_order(self) -> None:
        claims = [make_claim("ns1", "first"), make_claim("ns1", "second")]
        pod = make_pod("ns1", claims, "true")

        container = pod.spec.containers[0]
        assert [(m.name, m.mount_path) for m in container.volume_mounts] == [
            ("volume1", "/mnt/volume1"),
            ("volume2", "/mnt/volume2"),
        ]
        assert [v.persistent_volume_claim.claim_name for v in pod.spec.volumes] == [
            "first",
            "second",
        ]
        assert container.args == ["-c", "true"]

    def test_generated_name_and_no_restart(self) -> None:
        pod = make_pod("ns1", [make_claim("ns1", "c")])

        assert pod.metadata.namespace == "ns1"
        assert pod.metadata.name is None
        assert pod.metadata.generate_name == "pvc-tester-"
        assert pod.spec.restart_policy == "Never"

    def test_idles_without_command(self) -> None:
        pod = make_pod("ns1", [make_claim("ns1", "c")])
        assert pod.spec.containers[0].args == ["-c", IDLE_COMMAND]

    def test_serializes(self) -> None:
        """Objects serialize to the API's camelCase form."""
        binding = make_volume_binding("ns1", "ns1-a", "fs-0123", "/a")
        body = client.ApiClient().sanitize_for_serialization(binding.volume)

        assert body["spec"]["csi"] == {"driver": DRIVER_NAME, "volumeHandle": "fs-0123:/a"}
        assert body["spec"]["claimRef"] == {"name": "ns1-a", "namespace": "ns1"}
        assert body["spec"]["persistentVolumeReclaimPolicy"] == "Retain"
