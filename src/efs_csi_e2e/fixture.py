"""Lifecycle of the fixture shared by every executor in a test run.

One executor (the leader) calls :meth:`FixtureCoordinator.resolve_fixture`,
which provisions whatever the configuration asks for and returns the state
including ownership flags. The leader publishes
:attr:`FixtureLifecycleState.payload`; every other executor calls
:meth:`FixtureCoordinator.adopt_fixture` with it and never provisions
anything. After all executors finish, :meth:`FixtureCoordinator.teardown`
runs against the leader's state and removes only what the leader created.

How the leader is chosen is up to the embedding test runner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .cloud import FileSystemManager
from .config import SharedFixtureConfig
from .deployment import DriverDeployment
from .exceptions import (
    FixtureNotResolvedError,
    FixtureProvisioningError,
    ManifestError,
    TeardownError,
)

logger = logging.getLogger(__name__)


@dataclass
class FixtureLifecycleState:
    """
    Per-process view of the shared fixture.

    Attributes:
        file_system_id: Resolved file system id (None until resolved or adopted)
        owns_file_system: This process must delete the file system at teardown
        owns_driver: This process must remove the driver deployment at teardown
    """

    file_system_id: str | None = None
    owns_file_system: bool = False
    owns_driver: bool = False

    @property
    def payload(self) -> bytes:
        """Broadcast payload for the other executors: the id as UTF-8."""
        if not self.file_system_id:
            raise FixtureNotResolvedError("publish the broadcast payload")
        return self.file_system_id.encode("utf-8")


class FixtureCoordinator:
    """
    Provisions, shares and tears down the suite-wide EFS fixture.

    Example:
        coordinator = FixtureCoordinator(SharedFixtureConfig.load())

        # leader
        state = coordinator.resolve_fixture()
        publish(state.payload)

        # every other executor
        state = FixtureCoordinator.adopt_fixture(receive())

        # after all executors finish, leader only
        coordinator.teardown(state)
    """

    def __init__(
        self,
        config: SharedFixtureConfig,
        file_systems: FileSystemManager | None = None,
        driver: DriverDeployment | None = None,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            config: Validated on every resolve; never modified
            file_systems: File system manager (default: built from config)
            driver: Driver deployment (default: built from config)
        """
        self.config = config
        self._file_systems = file_systems
        self._driver = driver

    @property
    def file_systems(self) -> FileSystemManager:
        if self._file_systems is None:
            self._file_systems = FileSystemManager(
                region=self.config.region or None,
                endpoint_url=self.config.endpoint_url,
            )
        return self._file_systems

    @property
    def driver(self) -> DriverDeployment:
        if self._driver is None:
            self._driver = DriverDeployment(self.config.driver_manifest)
        return self._driver

    def resolve_fixture(self) -> FixtureLifecycleState:
        """
        Leader-side setup: validate config, create the file system and
        deploy the driver as requested.

        Returns:
            State carrying the resolved id and what this process owns

        Raises:
            ConfigurationError: If the configuration is invalid
            FixtureProvisioningError: If creating the file system or deploying
                the driver fails. Nothing already created is rolled back.
            DriverLookupError: If checking for the driver fails other than not-found
        """
        config = self.config
        config.validate()

        state = FixtureLifecycleState(file_system_id=config.file_system_id or None)

        if config.create_file_system:
            logger.info(
                "Creating EFS filesystem in region %r for cluster %r",
                config.region,
                config.cluster_name,
            )
            state.file_system_id = self.file_systems.create_file_system(config.cluster_name)
            state.owns_file_system = True
            logger.info(
                "Created EFS filesystem %r in region %r for cluster %r",
                state.file_system_id,
                config.region,
                config.cluster_name,
            )

        if config.deploy_driver:
            try:
                state.owns_driver = self.driver.ensure_deployed()
            except ManifestError as e:
                if state.owns_file_system:
                    logger.error(
                        "EFS filesystem %r was created and is left in place",
                        state.file_system_id,
                    )
                raise FixtureProvisioningError(
                    "deploying driver", e.reason, resource=e.manifest, cause=e
                ) from e

        return state

    @staticmethod
    def adopt_fixture(payload: bytes) -> FixtureLifecycleState:
        """Follower-side setup: take the leader's file system id verbatim."""
        return FixtureLifecycleState(file_system_id=payload.decode("utf-8"))

    def teardown(self, state: FixtureLifecycleState) -> None:
        """
        Remove what ``state`` owns: the file system, then the driver.

        Both removals are attempted even if the first fails. Ownership flags
        are cleared as each removal succeeds, so calling this again never
        deletes anything twice. A follower's state owns nothing and this is
        a no-op.

        Raises:
            TeardownError: If any removal failed
        """
        errors: list[tuple[str, BaseException]] = []

        if state.owns_file_system and state.file_system_id:
            logger.info("Deleting EFS filesystem %r", state.file_system_id)
            try:
                self.file_systems.delete_file_system(state.file_system_id)
            except Exception as e:
                logger.error("Failed to delete EFS filesystem %r: %s", state.file_system_id, e)
                errors.append((f"deleting file system {state.file_system_id}", e))
            else:
                state.owns_file_system = False
                logger.info("Deleted EFS filesystem %r", state.file_system_id)

        if state.owns_driver:
            try:
                self.driver.destroy()
            except Exception as e:
                logger.error("Failed to remove EFS CSI driver: %s", e)
                errors.append(("removing driver deployment", e))
            else:
                state.owns_driver = False

        if errors:
            raise TeardownError(errors)
