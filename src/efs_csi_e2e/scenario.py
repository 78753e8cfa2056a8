"""Subpath isolation on one shared EFS file system.

Three volumes point at one file system: the root, ``/a`` and ``/b``. A pod
creates ``a`` and ``b`` through the root volume, then a second pod mounts the
``/a`` and ``/b`` volumes together. The second pod only reaches ``Running``
if the driver resolves each handle to the directory the first pod created.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from .exceptions import CleanupError, PodFailedError
from .objects import VolumeBinding, make_pod, make_volume_binding
from .volume_handle import describe
from .waiting import poll_until

logger = logging.getLogger(__name__)

SUBPATHS = ("/a", "/b")
MKDIR_COMMAND = " && ".join(f"mkdir -p /mnt/volume1{path}" for path in SUBPATHS)

POD_START_TIMEOUT = 300.0


class CleanupStack:
    """
    Cleanup actions run in reverse order of registration.

    Every action runs even if an earlier one fails; failures are collected
    into a single :class:`CleanupError`. Used as a context manager, an error
    raised by the body takes precedence and cleanup failures are only logged.
    """

    def __init__(self) -> None:
        self._actions: list[tuple[str, Callable[[], Any]]] = []

    def __len__(self) -> int:
        return len(self._actions)

    def push(self, description: str, action: Callable[[], Any]) -> None:
        self._actions.append((description, action))

    def run(self) -> None:
        errors: list[tuple[str, BaseException]] = []
        while self._actions:
            description, action = self._actions.pop()
            try:
                action()
            except Exception as e:
                logger.warning("Cleanup failed (%s): %s", description, e)
                errors.append((description, e))
        if errors:
            raise CleanupError(errors)

    def __enter__(self) -> CleanupStack:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.run()
            return
        try:
            self.run()
        except CleanupError as e:
            logger.error("Cleanup after failed scenario also failed: %s", e)


def _ignore_not_found(delete: Callable[..., Any], *args: Any) -> None:
    try:
        delete(*args)
    except ApiException as e:
        if e.status != 404:
            raise


def create_volume_binding(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    file_system_id: str,
    subpath: str,
    cleanups: CleanupStack,
) -> VolumeBinding:
    """Create a claim and its volume, registering deletion of each as it is created."""
    binding = make_volume_binding(namespace, name, file_system_id, subpath)

    core_api.create_namespaced_persistent_volume_claim(namespace, binding.claim)
    cleanups.push(
        f"deleting pvc {namespace}/{name}",
        lambda: _ignore_not_found(
            core_api.delete_namespaced_persistent_volume_claim, name, namespace
        ),
    )

    core_api.create_persistent_volume(binding.volume)
    cleanups.push(
        f"deleting pv {name}",
        lambda: _ignore_not_found(core_api.delete_persistent_volume, name),
    )

    logger.debug("Created pvc & pv %s -> %s", name, describe(binding.handle))
    return binding


def create_pod(
    core_api: client.CoreV1Api,
    namespace: str,
    bindings: Sequence[VolumeBinding],
    command: str,
    cleanups: CleanupStack,
) -> str:
    """Create a pod mounting ``bindings`` and register its deletion. Returns the pod name."""
    pod = make_pod(namespace, [b.claim for b in bindings], command)
    created = core_api.create_namespaced_pod(namespace, pod)
    name = str(created.metadata.name)
    cleanups.push(
        f"deleting pod {namespace}/{name}",
        lambda: _ignore_not_found(core_api.delete_namespaced_pod, name, namespace),
    )
    return name


def _pod_phase(core_api: client.CoreV1Api, namespace: str, name: str) -> str:
    pod = core_api.read_namespaced_pod(name, namespace)
    return str(pod.status.phase) if pod.status and pod.status.phase else "Unknown"


def wait_for_pod_success(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    timeout: float = POD_START_TIMEOUT,
) -> None:
    """
    Wait for a pod to exit successfully.

    Raises:
        PodFailedError: If the pod fails
        WaitTimeoutError: If the pod hasn't succeeded within ``timeout``
    """

    def check() -> tuple[bool, str]:
        phase = _pod_phase(core_api, namespace, name)
        if phase == "Failed":
            raise PodFailedError(namespace, name, phase, "Succeeded")
        return phase == "Succeeded", phase

    poll_until(check, f"pod {namespace}/{name} to succeed", timeout)


def wait_for_pod_running(
    core_api: client.CoreV1Api,
    namespace: str,
    name: str,
    timeout: float = POD_START_TIMEOUT,
) -> None:
    """
    Wait for a pod to reach ``Running``.

    Raises:
        PodFailedError: If the pod terminates before running
        WaitTimeoutError: If the pod isn't running within ``timeout``
    """

    def check() -> tuple[bool, str]:
        phase = _pod_phase(core_api, namespace, name)
        if phase in ("Failed", "Succeeded"):
            raise PodFailedError(namespace, name, phase, "Running")
        return phase == "Running", phase

    poll_until(check, f"pod {namespace}/{name} to be running", timeout)


def run_path_isolation(
    core_api: client.CoreV1Api,
    namespace: str,
    file_system_id: str,
    timeout: float = POD_START_TIMEOUT,
) -> list[VolumeBinding]:
    """
    Mount different paths of one file system through different volumes.

    All claims, volumes and pods are deleted before returning, whether or
    not the scenario passed.

    Returns:
        The subpath bindings mounted by the second pod

    Raises:
        PodFailedError: If either pod fails
        WaitTimeoutError: If either pod doesn't reach its target phase in time
        CleanupError: If the scenario passed but deleting a resource failed
    """
    with CleanupStack() as cleanups:
        logger.info("Creating efs pvc & pv with no subpath")
        root = create_volume_binding(
            core_api, namespace, f"{namespace}-root", file_system_id, "", cleanups
        )

        logger.info("Creating pod to make subpaths %s", " and ".join(SUBPATHS))
        pod_name = create_pod(core_api, namespace, [root], MKDIR_COMMAND, cleanups)
        wait_for_pod_success(core_api, namespace, pod_name, timeout)

        subpath_bindings = []
        for subpath in SUBPATHS:
            logger.info("Creating efs pvc & pv with subpath %s", subpath)
            subpath_bindings.append(
                create_volume_binding(
                    core_api,
                    namespace,
                    f"{namespace}-{subpath.strip('/')}",
                    file_system_id,
                    subpath,
                    cleanups,
                )
            )

        logger.info("Creating pod to mount subpaths %s", " and ".join(SUBPATHS))
        pod_name = create_pod(core_api, namespace, subpath_bindings, "", cleanups)
        wait_for_pod_running(core_api, namespace, pod_name, timeout)

    return subpath_bindings
