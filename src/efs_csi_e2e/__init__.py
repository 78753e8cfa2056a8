"""
efs-csi-e2e: End-to-end test harness for the Amazon EFS CSI driver.

Parallel test executors share one EFS file system (and optionally one
driver deployment). One executor provisions it, the rest adopt its id,
and it is removed once after every executor has finished. Test volumes
address subdirectories of the shared file system through volume handles.

Example (pytest, loaded automatically as a plugin):
    def test_isolation(core_api, namespace, file_system_id):
        run_path_isolation(core_api, namespace, file_system_id)

    $ pytest -n 4 --efs-cluster-name my-cluster --efs-region us-west-2

Example (another runner):
    from efs_csi_e2e import FixtureCoordinator, SharedFixtureConfig

    coordinator = FixtureCoordinator(SharedFixtureConfig.load())
    state = coordinator.resolve_fixture()        # leader only
    state = FixtureCoordinator.adopt_fixture(p)  # everyone else
    coordinator.teardown(state)                  # leader, after all tests
"""

from importlib.metadata import PackageNotFoundError, version

from .cloud import FileSystemManager
from .config import SharedFixtureConfig
from .deployment import DRIVER_NAME, DriverDeployment
from .exceptions import (
    CleanupError,
    ConfigurationError,
    DriverLookupError,
    EFSE2EError,
    FatalFixtureError,
    FixtureDeletionError,
    FixtureNotResolvedError,
    FixtureProvisioningError,
    InvalidSubpathError,
    LeaderSetupFailed,
    ManifestError,
    PodFailedError,
    TeardownError,
    TestCaseError,
    WaitTimeoutError,
)
from .fixture import FixtureCoordinator, FixtureLifecycleState
from .objects import VolumeBinding, make_pod, make_volume_binding
from .scenario import CleanupStack, run_path_isolation
from .testdriver import EFS_DRIVER_INFO, GENERIC_SUITES, EFSDriver

try:
    __version__ = version("efs-csi-e2e")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    "__version__",
    # Fixture lifecycle
    "FixtureCoordinator",
    "FixtureLifecycleState",
    "SharedFixtureConfig",
    "FileSystemManager",
    "DriverDeployment",
    "DRIVER_NAME",
    # Scenario
    "CleanupStack",
    "VolumeBinding",
    "make_pod",
    "make_volume_binding",
    "run_path_isolation",
    # Driver descriptor
    "EFSDriver",
    "EFS_DRIVER_INFO",
    "GENERIC_SUITES",
    # Exceptions
    "EFSE2EError",
    "FatalFixtureError",
    "TestCaseError",
    "ConfigurationError",
    "FixtureProvisioningError",
    "FixtureDeletionError",
    "ManifestError",
    "DriverLookupError",
    "LeaderSetupFailed",
    "FixtureNotResolvedError",
    "PodFailedError",
    "WaitTimeoutError",
    "CleanupError",
    "TeardownError",
    "InvalidSubpathError",
]
