"""Kubernetes object builders for statically provisioned EFS volumes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from kubernetes import client

from .deployment import DRIVER_NAME
from .volume_handle import encode

NOMINAL_CAPACITY = "1Gi"
"""EFS is elastic; capacity only satisfies the claim/volume schema."""

ACCESS_MODES = ["ReadWriteMany"]

POD_IMAGE = "busybox"
IDLE_COMMAND = "trap exit TERM; while true; do sleep 1; done"


@dataclass(frozen=True)
class VolumeBinding:
    """A claim and the pre-provisioned volume bound to it."""

    claim: client.V1PersistentVolumeClaim
    volume: client.V1PersistentVolume

    @property
    def handle(self) -> str:
        return str(self.volume.spec.csi.volume_handle)


def make_claim(namespace: str, name: str) -> client.V1PersistentVolumeClaim:
    """Build a ReadWriteMany claim with no storage class (static binding only)."""
    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=list(ACCESS_MODES),
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": NOMINAL_CAPACITY},
            ),
            storage_class_name="",
        ),
    )


def make_volume(name: str, file_system_id: str, subpath: str = "") -> client.V1PersistentVolume:
    """Build a retained EFS volume whose handle addresses ``subpath``."""
    return client.V1PersistentVolume(
        api_version="v1",
        kind="PersistentVolume",
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V1PersistentVolumeSpec(
            persistent_volume_reclaim_policy="Retain",
            capacity={"storage": NOMINAL_CAPACITY},
            access_modes=list(ACCESS_MODES),
            csi=client.V1CSIPersistentVolumeSource(
                driver=DRIVER_NAME,
                volume_handle=encode(file_system_id, subpath),
            ),
        ),
    )


def make_volume_binding(
    namespace: str, name: str, file_system_id: str, subpath: str = ""
) -> VolumeBinding:
    """
    Build a claim and volume that can only bind to each other.

    Both objects are named ``name``; the claim names the volume and the
    volume's claimRef names the claim.
    """
    claim = make_claim(namespace, name)
    volume = make_volume(name, file_system_id, subpath)
    claim.spec.volume_name = volume.metadata.name
    volume.spec.claim_ref = client.V1ObjectReference(
        namespace=claim.metadata.namespace,
        name=claim.metadata.name,
    )
    return VolumeBinding(claim=claim, volume=volume)


def make_pod(
    namespace: str,
    claims: Sequence[client.V1PersistentVolumeClaim],
    command: str = "",
    name_prefix: str = "pvc-tester-",
) -> client.V1Pod:
    """
    Build a pod mounting each claim at ``/mnt/volume<N>`` (1-based).

    Without a command the pod idles until deleted. The pod never restarts,
    so a failing command leaves it in the ``Failed`` phase.
    """
    mounts = []
    volumes = []
    for index, claim in enumerate(claims, start=1):
        volume_name = f"volume{index}"
        mounts.append(client.V1VolumeMount(name=volume_name, mount_path=f"/mnt/{volume_name}"))
        volumes.append(
            client.V1Volume(
                name=volume_name,
                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                    claim_name=claim.metadata.name,
                ),
            )
        )

    return client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(generate_name=name_prefix, namespace=namespace),
        spec=client.V1PodSpec(
            restart_policy="Never",
            containers=[
                client.V1Container(
                    name="write-pod",
                    image=POD_IMAGE,
                    command=["/bin/sh"],
                    args=["-c", command or IDLE_COMMAND],
                    volume_mounts=mounts,
                )
            ],
            volumes=volumes,
        ),
    )
