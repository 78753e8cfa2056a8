"""pytest integration for the shared EFS fixture.

With xdist each worker has its own session scope. The ``efs_fixture``
session fixture goes through :func:`get_or_resolve_fixture`, so only the
first worker provisions the file system (and driver); the others adopt its
id. Teardown runs from ``pytest_sessionfinish`` in the xdist controller
after all workers finish, or in the single process when xdist is disabled.

Configuration comes from the ``--efs-*`` options, falling back to the
``EFS_E2E_*`` environment variables.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterator
from pathlib import Path

import pytest
from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException

from .config import SharedFixtureConfig
from .coordination import get_or_resolve_fixture, load_leader_state
from .deployment import DriverDeployment
from .exceptions import ConfigurationError, FatalFixtureError, TeardownError
from .fixture import FixtureCoordinator, FixtureLifecycleState
from .testdriver import EFSDriver


OPTION_DESTS = (
    "efs_cluster_name",
    "efs_region",
    "efs_file_system_id",
    "efs_create_file_system",
    "efs_deploy_driver",
    "efs_driver_manifest",
)

ENV_PREFIX = "EFS_E2E_"


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add --efs-* options."""
    group = parser.getgroup("efs-csi-e2e", "EFS CSI driver end-to-end fixture")
    group.addoption(
        "--efs-cluster-name",
        dest="efs_cluster_name",
        default=None,
        help="Cluster name used to tag and place a created file system",
    )
    group.addoption(
        "--efs-region",
        dest="efs_region",
        default=None,
        help="AWS region of the cluster",
    )
    group.addoption(
        "--efs-file-system-id",
        dest="efs_file_system_id",
        default=None,
        help="Test against this existing file system instead of creating one",
    )
    group.addoption(
        "--efs-create-file-system",
        dest="efs_create_file_system",
        action="store_true",
        default=None,
        help="Create a file system before the suite and delete it afterwards",
    )
    group.addoption(
        "--efs-no-create-file-system",
        dest="efs_create_file_system",
        action="store_false",
        help="Never create a file system (requires --efs-file-system-id)",
    )
    group.addoption(
        "--efs-deploy-driver",
        dest="efs_deploy_driver",
        action="store_true",
        default=None,
        help="Deploy the stable driver if none is installed, and remove it afterwards",
    )
    group.addoption(
        "--efs-driver-manifest",
        dest="efs_driver_manifest",
        default=None,
        help="Kustomize reference used by --efs-deploy-driver",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "e2e: needs a Kubernetes cluster with EFS access")


def load_fixture_config(config: pytest.Config) -> SharedFixtureConfig:
    """Build the fixture configuration from options and environment."""
    return SharedFixtureConfig.load(
        cluster_name=config.getoption("efs_cluster_name"),
        region=config.getoption("efs_region"),
        file_system_id=config.getoption("efs_file_system_id"),
        create_file_system=config.getoption("efs_create_file_system"),
        deploy_driver=config.getoption("efs_deploy_driver"),
        driver_manifest=config.getoption("efs_driver_manifest"),
    )


def fixture_requested(config: pytest.Config) -> bool:
    """Whether any --efs-* option or EFS_E2E_* variable was given."""
    if any(config.getoption(dest) is not None for dest in OPTION_DESTS):
        return True
    return any(name.startswith(ENV_PREFIX) for name in os.environ)


def is_xdist_worker(config: pytest.Config) -> bool:
    return hasattr(config, "workerinput")


def shared_root(tmp_path_factory: pytest.TempPathFactory, worker: bool) -> Path:
    """Directory visible to every process of the run."""
    basetemp = tmp_path_factory.getbasetemp()
    # Worker basetemps are subdirectories of the controller's
    return basetemp.parent if worker else basetemp


def load_kube_api_client() -> client.ApiClient:
    """Load in-cluster config if available, else the local kubeconfig."""
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        kube_config.load_kube_config()
    return client.ApiClient()


def pytest_sessionstart(session: pytest.Session) -> None:
    """
    Reject an invalid fixture configuration before any worker starts.

    Runs in the xdist controller or the single process. Runs that never
    mention the fixture are left alone; their tests fail only if they use it.
    """
    config = session.config
    if is_xdist_worker(config) or not fixture_requested(config):
        return
    try:
        load_fixture_config(config).validate()
    except ConfigurationError as e:
        pytest.exit(
            f"Shared EFS fixture setup failed: {e}",
            returncode=pytest.ExitCode.USAGE_ERROR,
        )


# Session fixtures


@pytest.fixture(scope="session")
def efs_fixture_config(pytestconfig: pytest.Config) -> SharedFixtureConfig:
    return load_fixture_config(pytestconfig)


@pytest.fixture(scope="session")
def kube_api_client() -> client.ApiClient:
    return load_kube_api_client()


@pytest.fixture(scope="session")
def core_api(kube_api_client: client.ApiClient) -> client.CoreV1Api:
    return client.CoreV1Api(kube_api_client)


@pytest.fixture(scope="session")
def efs_fixture(
    request: pytest.FixtureRequest,
    efs_fixture_config: SharedFixtureConfig,
    tmp_path_factory: pytest.TempPathFactory,
) -> FixtureLifecycleState:
    """
    The shared fixture, resolved on one worker and adopted on the rest.

    A fatal setup error stops a single-process run. On an xdist worker it
    errors every test that uses the fixture instead; workers never call
    ``pytest.exit``.

    Cleanup is handled by ``pytest_sessionfinish``, not by this fixture.
    """
    driver = None
    if efs_fixture_config.deploy_driver:
        api_client = request.getfixturevalue("kube_api_client")
        driver = DriverDeployment(
            efs_fixture_config.driver_manifest,
            storage_api=client.StorageV1Api(api_client),
        )
    coordinator = FixtureCoordinator(efs_fixture_config, driver=driver)

    root = shared_root(tmp_path_factory, is_xdist_worker(request.config))
    try:
        return get_or_resolve_fixture(root, coordinator.resolve_fixture)
    except FatalFixtureError as e:
        message = f"Shared EFS fixture setup failed: {e}"
        if is_xdist_worker(request.config):
            pytest.fail(message, pytrace=False)
        pytest.exit(message, returncode=pytest.ExitCode.INTERNAL_ERROR)


@pytest.fixture(scope="session")
def file_system_id(efs_fixture: FixtureLifecycleState) -> str:
    assert efs_fixture.file_system_id is not None
    return efs_fixture.file_system_id


@pytest.fixture(scope="session")
def efs_driver(efs_fixture: FixtureLifecycleState) -> EFSDriver:
    return EFSDriver(efs_fixture)


# Per-test fixtures


@pytest.fixture
def namespace(core_api: client.CoreV1Api) -> Iterator[str]:
    """Create a unique ``efs-`` namespace for one test and delete it afterwards."""
    name = f"efs-{uuid.uuid4().hex[:8]}"
    core_api.create_namespace(client.V1Namespace(metadata=client.V1ObjectMeta(name=name)))
    yield name
    try:
        core_api.delete_namespace(name)
    except ApiException as e:
        if e.status != 404:
            raise


# Teardown barrier


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Remove what the leader provisioned once every worker has finished."""
    config = session.config
    if is_xdist_worker(config):
        return

    tmp_path_factory = getattr(config, "_tmp_path_factory", None)
    if tmp_path_factory is None:
        return

    state = load_leader_state(shared_root(tmp_path_factory, worker=False))
    if state is None:
        return

    coordinator = FixtureCoordinator(load_fixture_config(config))
    try:
        coordinator.teardown(state)
    except TeardownError as e:
        reporter = config.pluginmanager.get_plugin("terminalreporter")
        if reporter is not None:
            reporter.write_line(f"Shared EFS fixture teardown failed: {e}", red=True)
        session.exitstatus = pytest.ExitCode.TESTS_FAILED
