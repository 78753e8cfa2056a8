"""Shared fixture configuration.

Values are resolved once before the suite starts: explicit arguments
(typically pytest command-line options) take precedence over environment
variables. The resulting :class:`SharedFixtureConfig` is immutable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .exceptions import ConfigurationError

CLUSTER_NAME_ENV_VAR = "EFS_E2E_CLUSTER_NAME"
REGION_ENV_VAR = "EFS_E2E_REGION"
FILE_SYSTEM_ID_ENV_VAR = "EFS_E2E_FILE_SYSTEM_ID"
CREATE_FILE_SYSTEM_ENV_VAR = "EFS_E2E_CREATE_FILE_SYSTEM"
DEPLOY_DRIVER_ENV_VAR = "EFS_E2E_DEPLOY_DRIVER"
DRIVER_MANIFEST_ENV_VAR = "EFS_E2E_DRIVER_MANIFEST"
ENDPOINT_URL_ENV_VAR = "AWS_ENDPOINT_URL"

DEFAULT_DRIVER_MANIFEST = (
    "github.com/kubernetes-sigs/aws-efs-csi-driver/deploy/kubernetes/overlays/stable/?ref=master"
)
"""Kustomize reference for the stable driver release."""

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def parse_bool(value: str, name: str) -> bool:
    """Parse a boolean flag from its string form."""
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class SharedFixtureConfig:
    """
    Process-wide configuration for the shared EFS fixture.

    Exactly one of ``file_system_id`` and ``create_file_system`` must be
    set. Supplying both is rejected rather than letting creation win.

    Attributes:
        cluster_name: Kubernetes cluster name, used to tag and place the file system
        region: AWS region of the cluster
        file_system_id: Pre-existing file system to test against
        create_file_system: Create a new file system before the suite
        deploy_driver: Deploy the stable driver if none is installed. Should
            be False in CI, where the driver under test is deployed separately.
        driver_manifest: Kustomize reference applied when deploying the driver
        endpoint_url: Optional AWS-compatible endpoint (e.g., LocalStack)
    """

    cluster_name: str = ""
    region: str = ""
    file_system_id: str = ""
    create_file_system: bool = False
    deploy_driver: bool = False
    driver_manifest: str = DEFAULT_DRIVER_MANIFEST
    endpoint_url: str | None = None

    def validate(self) -> None:
        """
        Check the configuration invariants.

        Raises:
            ConfigurationError: If the combination of values is invalid
        """
        if self.create_file_system and self.file_system_id:
            raise ConfigurationError(
                f"create_file_system is set and file_system_id is {self.file_system_id!r}; "
                "choose one"
            )
        if not self.create_file_system and not self.file_system_id:
            raise ConfigurationError(
                "Can't run tests without an EFS filesystem: "
                "create_file_system is false and file_system_id is empty"
            )
        if self.create_file_system and (not self.region or not self.cluster_name):
            raise ConfigurationError(
                "Can't create EFS filesystem: both region and cluster_name must be non-empty"
            )
        if self.deploy_driver and not self.driver_manifest:
            raise ConfigurationError("deploy_driver is set but driver_manifest is empty")

    @classmethod
    def load(
        cls,
        *,
        cluster_name: str | None = None,
        region: str | None = None,
        file_system_id: str | None = None,
        create_file_system: bool | None = None,
        deploy_driver: bool | None = None,
        driver_manifest: str | None = None,
        endpoint_url: str | None = None,
    ) -> SharedFixtureConfig:
        """
        Resolve configuration from explicit values, then environment variables.

        When neither an explicit value nor ``EFS_E2E_CREATE_FILE_SYSTEM`` says
        otherwise, a file system is created only if no pre-existing id was given.

        Returns:
            An unvalidated SharedFixtureConfig; call :meth:`validate` before use.
        """
        env = os.environ

        resolved_id = file_system_id or env.get(FILE_SYSTEM_ID_ENV_VAR, "")

        if create_file_system is None:
            raw = env.get(CREATE_FILE_SYSTEM_ENV_VAR)
            if raw is None:
                create_file_system = not resolved_id
            else:
                create_file_system = parse_bool(raw, CREATE_FILE_SYSTEM_ENV_VAR)

        if deploy_driver is None:
            deploy_driver = parse_bool(env.get(DEPLOY_DRIVER_ENV_VAR, ""), DEPLOY_DRIVER_ENV_VAR)

        return cls(
            cluster_name=cluster_name or env.get(CLUSTER_NAME_ENV_VAR, ""),
            region=region or env.get(REGION_ENV_VAR) or env.get("AWS_DEFAULT_REGION", ""),
            file_system_id=resolved_id,
            create_file_system=create_file_system,
            deploy_driver=deploy_driver,
            driver_manifest=driver_manifest
            or env.get(DRIVER_MANIFEST_ENV_VAR)
            or DEFAULT_DRIVER_MANIFEST,
            endpoint_url=endpoint_url or env.get(ENDPOINT_URL_ENV_VAR) or None,
        )
