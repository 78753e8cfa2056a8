"""Deployment of the EFS CSI driver onto the cluster under test."""

from __future__ import annotations

import logging
import subprocess
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .exceptions import DriverLookupError, ManifestError

logger = logging.getLogger(__name__)

DRIVER_NAME = "efs.csi.aws.com"


class DriverDeployment:
    """
    Detects, deploys and removes the driver from a kustomize manifest.

    Presence is decided by the driver's ``CSIDriver`` registration object;
    the manifest is applied and deleted with ``kubectl -k``.
    """

    def __init__(
        self,
        manifest: str,
        storage_api: Any = None,
        kubectl: str = "kubectl",
    ) -> None:
        """
        Initialize driver deployment.

        Args:
            manifest: Kustomize reference (directory or remote URL)
            storage_api: StorageV1Api instance (default: built from the loaded kube config)
            kubectl: kubectl executable
        """
        self.manifest = manifest
        self.kubectl = kubectl
        self._storage_api = storage_api

    @property
    def storage_api(self) -> Any:
        if self._storage_api is None:
            self._storage_api = client.StorageV1Api()
        return self._storage_api

    def is_deployed(self) -> bool:
        """
        Check whether the driver's CSIDriver object exists.

        Returns:
            True if the driver is registered, False on 404

        Raises:
            DriverLookupError: If the lookup fails for any other reason
        """
        try:
            self.storage_api.read_csi_driver(DRIVER_NAME)
        except ApiException as e:
            if e.status == 404:
                return False
            raise DriverLookupError(DRIVER_NAME, e.status, e.reason or str(e)) from e
        except (HTTPError, OSError) as e:
            # No response from the API server
            raise DriverLookupError(DRIVER_NAME, None, str(e) or type(e).__name__) from e
        return True

    def _run_kubectl(self, action: str) -> None:
        cmd = [self.kubectl, action, "-k", self.manifest]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ManifestError(action, self.manifest, str(e)) from e
        if result.returncode != 0:
            raise ManifestError(
                action, self.manifest, result.stderr.strip() or f"exit status {result.returncode}"
            )

    def deploy(self) -> None:
        """Apply the driver manifest."""
        logger.info("Deploying EFS CSI driver from %s", self.manifest)
        self._run_kubectl("apply")
        logger.info("Deployed EFS CSI driver")

    def destroy(self) -> None:
        """Delete everything the driver manifest created."""
        logger.info("Cleaning up EFS CSI driver")
        self._run_kubectl("delete")

    def ensure_deployed(self) -> bool:
        """
        Deploy the driver unless it is already registered.

        Returns:
            True if this call deployed the driver (the caller owns its removal)
        """
        if self.is_deployed():
            logger.info("Using already-deployed EFS CSI driver")
            return False
        self.deploy()
        return True
