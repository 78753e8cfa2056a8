"""Pytest fixtures for efs-csi-e2e tests."""

import pytest
from moto import mock_aws

# Pytest hooks for --run-e2e flag


def pytest_addoption(parser):
    """Add --run-e2e pytest option."""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run tests against a real cluster (requires kubeconfig and AWS credentials)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip cluster tests unless --run-e2e flag is provided."""
    if not config.getoption("--run-e2e"):
        skip_e2e = pytest.mark.skip(reason="Need --run-e2e option to run")
        for item in items:
            if "e2e" in item.keywords:
                item.add_marker(skip_e2e)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    # Unset AWS_ENDPOINT_URL to ensure moto intercepts requests
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mock_cloud(aws_credentials):
    """Mock EFS and EC2 for tests."""
    with mock_aws():
        yield


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every EFS_E2E_* variable so config tests start from defaults."""
    for name in (
        "EFS_E2E_CLUSTER_NAME",
        "EFS_E2E_REGION",
        "EFS_E2E_FILE_SYSTEM_ID",
        "EFS_E2E_CREATE_FILE_SYSTEM",
        "EFS_E2E_DEPLOY_DRIVER",
        "EFS_E2E_DRIVER_MANIFEST",
        "AWS_ENDPOINT_URL",
        "AWS_DEFAULT_REGION",
    ):
        monkeypatch.delenv(name, raising=False)
