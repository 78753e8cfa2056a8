"""EFS driver descriptor for generic storage test suites.

Generic suites exercise the driver through :class:`EFSDriver` using
pre-provisioned volumes only: every volume source points at the root of the
shared file system.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from kubernetes import client

from .deployment import DRIVER_NAME
from .exceptions import FixtureNotResolvedError
from .fixture import FixtureLifecycleState


class Capability(str, Enum):
    """Driver capabilities a generic suite may depend on."""

    PERSISTENCE = "persistence"
    EXEC = "exec"
    MULTI_PODS = "multipods"
    RWX = "RWX"


@dataclass(frozen=True)
class DriverInfo:
    """Static description of what the driver supports."""

    name: str
    supported_fs_types: frozenset[str]
    supported_mount_options: frozenset[str]
    capabilities: Mapping[Capability, bool] = field(default_factory=dict)

    def supports(self, capability: Capability) -> bool:
        return self.capabilities.get(capability, False)


EFS_DRIVER_INFO = DriverInfo(
    name=DRIVER_NAME,
    supported_fs_types=frozenset({""}),
    supported_mount_options=frozenset({"tls", "ro"}),
    capabilities={
        Capability.PERSISTENCE: True,
        Capability.EXEC: True,
        Capability.MULTI_PODS: True,
        Capability.RWX: True,
    },
)


@dataclass
class PerTestConfig:
    """Context handed to a generic suite for one test."""

    driver: EFSDriver
    prefix: str
    namespace: str


class EFSDriver:
    """
    Pre-provisioned-volume test driver backed by the shared file system.

    The driver reads the file system id from the fixture state when a volume
    source is requested, so it can be built before the setup barrier.
    """

    def __init__(self, state: FixtureLifecycleState) -> None:
        self._state = state

    @property
    def driver_info(self) -> DriverInfo:
        return EFS_DRIVER_INFO

    def skip_unsupported_test(self, pattern: Any) -> None:
        """Every generic pattern is supported."""

    def prepare_test(self, namespace: str) -> tuple[PerTestConfig, Callable[[], None]]:
        return PerTestConfig(driver=self, prefix="efs", namespace=namespace), lambda: None

    def create_volume(self, config: PerTestConfig, volume_type: Any) -> None:
        """Volumes are pre-provisioned; there is nothing to create."""
        return None

    def get_persistent_volume_source(
        self, read_only: bool, fs_type: str, volume: Any = None
    ) -> tuple[client.V1PersistentVolumeSource, None]:
        """
        Volume source for the root of the shared file system.

        Returns:
            ``(source, node_affinity)``; EFS volumes have no node affinity
        """
        if not self._state.file_system_id:
            raise FixtureNotResolvedError("build a volume source")
        source = client.V1PersistentVolumeSource(
            csi=client.V1CSIPersistentVolumeSource(
                driver=self.driver_info.name,
                volume_handle=self._state.file_system_id,
                read_only=read_only or None,
            )
        )
        return source, None


class GenericSuite(Protocol):
    """A generic volume-behaviour suite provided by an external library."""

    name: str

    def define_tests(self, driver: EFSDriver) -> None: ...


GENERIC_SUITES = (
    "volumes",
    "volume-io",
    "volume-mode",
    "subpath",
    "provisioning",
    "multi-volume",
)
"""Generic suites run against the driver, in order."""


def define_test_suites(
    driver: EFSDriver, suite_factories: Sequence[Callable[[], GenericSuite]]
) -> list[GenericSuite]:
    """Instantiate each suite in order and define its tests for ``driver``."""
    suites = []
    for factory in suite_factories:
        suite = factory()
        suite.define_tests(driver)
        suites.append(suite)
    return suites


def ordered_suites(
    available: Mapping[str, Callable[[], GenericSuite]],
) -> list[Callable[[], GenericSuite]]:
    """
    Pick the registered suite factories in :data:`GENERIC_SUITES` order.

    Raises:
        KeyError: If a registered suite has no factory in ``available``
    """
    missing = [name for name in GENERIC_SUITES if name not in available]
    if missing:
        raise KeyError(f"No factory for generic suite(s): {', '.join(missing)}")
    return [available[name] for name in GENERIC_SUITES]
