"""EFS file system lifecycle for the shared test fixture."""

from __future__ import annotations

import logging
import uuid
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import FixtureDeletionError, FixtureProvisioningError, WaitTimeoutError
from .waiting import poll_until

logger = logging.getLogger(__name__)

# Tag keys
CLUSTER_TAG_KEY_FORMAT = "kubernetes.io/cluster/{}"
CLUSTER_TAG_VALUE = "owned"
MANAGED_BY_TAG_KEY = "ManagedBy"
MANAGED_BY_TAG_VALUE = "efs-csi-e2e"

NFS_PORT = 2049

FILE_SYSTEM_TIMEOUT = 300.0
MOUNT_TARGET_TIMEOUT = 600.0


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return f"EFS API error: {error.response['Error']['Message']}"
    return str(error)


def cluster_tag_key(cluster_name: str) -> str:
    """Tag key identifying resources that belong to ``cluster_name``."""
    return CLUSTER_TAG_KEY_FORMAT.format(cluster_name)


class FileSystemManager:
    """
    Creates and deletes the EFS file system shared by the whole suite.

    A created file system is tagged for the cluster and gets a mount target
    in every availability zone that hosts a running cluster instance, so
    pods on any node can mount it. NFS traffic is allowed on the instances'
    security groups.

    Supports both AWS and LocalStack environments. When endpoint_url is
    provided, EFS and EC2 operations are performed against that endpoint.
    """

    def __init__(self, region: str | None = None, endpoint_url: str | None = None) -> None:
        """
        Initialize file system manager.

        Args:
            region: AWS region (default: use boto3 defaults)
            endpoint_url: Optional endpoint URL (for LocalStack or other AWS-compatible services)
        """
        self.region = region
        self.endpoint_url = endpoint_url
        self._clients: dict[str, Any] = {}

    def _get_client(self, service: str) -> Any:
        """Get or create a boto3 client for ``service``."""
        if service not in self._clients:
            kwargs: dict[str, Any] = {}
            if self.region:
                kwargs["region_name"] = self.region
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
            self._clients[service] = boto3.client(service, **kwargs)
        return self._clients[service]

    def _get_tags(self, cluster_name: str) -> list[dict[str, str]]:
        return [
            {"Key": "Name", "Value": f"{cluster_name}-efs-e2e"},
            {"Key": cluster_tag_key(cluster_name), "Value": CLUSTER_TAG_VALUE},
            {"Key": MANAGED_BY_TAG_KEY, "Value": MANAGED_BY_TAG_VALUE},
        ]

    def create_file_system(self, cluster_name: str, wait: bool = True) -> str:
        """
        Create an EFS file system for ``cluster_name`` and its mount targets.

        A failure part-way through leaves whatever was already created in
        place; the error names the file system so it can be removed out of
        band (see ``efs-csi-e2e delete-filesystem``).

        Args:
            cluster_name: Cluster whose instances will mount the file system
            wait: Wait for the file system and mount targets to be available

        Returns:
            The new file system id

        Raises:
            FixtureProvisioningError: If any step fails
        """
        client = self._get_client("efs")
        creation_token = f"{cluster_name}-{uuid.uuid4().hex[:8]}"

        try:
            response = client.create_file_system(
                CreationToken=creation_token,
                PerformanceMode="generalPurpose",
                Encrypted=True,
                Tags=self._get_tags(cluster_name),
            )
        except (BotoCoreError, ClientError) as e:
            raise FixtureProvisioningError(
                "creating file system",
                _error_message(e),
                resource=cluster_name,
                cause=e,
            ) from e

        file_system_id = response["FileSystemId"]
        logger.info("Created EFS file system %s for cluster %s", file_system_id, cluster_name)

        try:
            if wait:
                self.wait_for_file_system(file_system_id)
            self._create_mount_targets(file_system_id, cluster_name)
            if wait:
                self.wait_for_mount_targets(file_system_id)
        except (BotoCoreError, ClientError, WaitTimeoutError) as e:
            raise FixtureProvisioningError(
                "creating mount targets",
                _error_message(e),
                resource=file_system_id,
                cause=e,
            ) from e

        return str(file_system_id)

    def _cluster_instances(self, cluster_name: str) -> list[dict[str, Any]]:
        """Running EC2 instances tagged as members of ``cluster_name``."""
        ec2 = self._get_client("ec2")
        paginator = ec2.get_paginator("describe_instances")
        instances: list[dict[str, Any]] = []
        for page in paginator.paginate(
            Filters=[
                {"Name": "tag-key", "Values": [cluster_tag_key(cluster_name)]},
                {"Name": "instance-state-name", "Values": ["running"]},
            ]
        ):
            for reservation in page.get("Reservations", []):
                instances.extend(reservation.get("Instances", []))
        return instances

    def _allow_nfs(self, group_id: str) -> None:
        """Allow NFS from members of ``group_id`` to members of ``group_id``."""
        ec2 = self._get_client("ec2")
        try:
            ec2.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[
                    {
                        "IpProtocol": "tcp",
                        "FromPort": NFS_PORT,
                        "ToPort": NFS_PORT,
                        "UserIdGroupPairs": [{"GroupId": group_id}],
                    }
                ],
            )
        except ClientError as e:
            if e.response["Error"]["Code"] != "InvalidPermission.Duplicate":
                raise

    def _create_mount_targets(self, file_system_id: str, cluster_name: str) -> None:
        instances = self._cluster_instances(cluster_name)
        if not instances:
            raise FixtureProvisioningError(
                "creating mount targets",
                f"no running instances tagged {cluster_tag_key(cluster_name)}",
                resource=file_system_id,
            )

        # EFS allows one mount target per availability zone
        by_zone: dict[str, dict[str, Any]] = {}
        for instance in instances:
            zone = instance["Placement"]["AvailabilityZone"]
            by_zone.setdefault(zone, instance)

        client = self._get_client("efs")
        for zone, instance in sorted(by_zone.items()):
            group_ids = [g["GroupId"] for g in instance.get("SecurityGroups", [])]
            for group_id in group_ids:
                self._allow_nfs(group_id)

            kwargs: dict[str, Any] = {
                "FileSystemId": file_system_id,
                "SubnetId": instance["SubnetId"],
            }
            if group_ids:
                kwargs["SecurityGroups"] = group_ids
            client.create_mount_target(**kwargs)
            logger.info(
                "Created mount target for %s in %s (subnet %s)",
                file_system_id,
                zone,
                instance["SubnetId"],
            )

    def get_file_system_state(self, file_system_id: str) -> str | None:
        """
        Get the lifecycle state of a file system.

        Returns:
            Lifecycle state string or None if the file system doesn't exist
        """
        client = self._get_client("efs")
        try:
            response = client.describe_file_systems(FileSystemId=file_system_id)
        except ClientError as e:
            if e.response["Error"]["Code"] == "FileSystemNotFound":
                return None
            raise
        file_systems = response.get("FileSystems", [])
        if not file_systems:
            return None
        return str(file_systems[0]["LifeCycleState"])

    def wait_for_file_system(
        self, file_system_id: str, timeout: float = FILE_SYSTEM_TIMEOUT
    ) -> None:
        """Wait until the file system is ``available``."""

        def check() -> tuple[bool, str | None]:
            state = self.get_file_system_state(file_system_id)
            return state == "available", state

        poll_until(check, f"file system {file_system_id} to become available", timeout)

    def _mount_target_states(self, file_system_id: str) -> dict[str, str]:
        client = self._get_client("efs")
        response = client.describe_mount_targets(FileSystemId=file_system_id)
        return {t["MountTargetId"]: t["LifeCycleState"] for t in response.get("MountTargets", [])}

    def wait_for_mount_targets(
        self, file_system_id: str, timeout: float = MOUNT_TARGET_TIMEOUT
    ) -> None:
        """Wait until every mount target of the file system is ``available``."""

        def check() -> tuple[bool, dict[str, str]]:
            states = self._mount_target_states(file_system_id)
            return all(s == "available" for s in states.values()), states

        poll_until(check, f"mount targets of {file_system_id} to become available", timeout)

    def delete_file_system(self, file_system_id: str, wait: bool = True) -> None:
        """
        Delete a file system, removing its mount targets first.

        A file system that no longer exists is treated as already deleted.

        Args:
            file_system_id: File system to delete
            wait: Wait for mount targets and the file system to disappear

        Raises:
            FixtureDeletionError: If deletion fails
        """
        client = self._get_client("efs")

        try:
            mount_targets = self._mount_target_states(file_system_id)
            for mount_target_id in mount_targets:
                client.delete_mount_target(MountTargetId=mount_target_id)
                logger.info("Deleted mount target %s of %s", mount_target_id, file_system_id)

            if wait and mount_targets:
                poll_until(
                    lambda: (not self._mount_target_states(file_system_id), None),
                    f"mount targets of {file_system_id} to be deleted",
                    MOUNT_TARGET_TIMEOUT,
                )

            client.delete_file_system(FileSystemId=file_system_id)

            if wait:
                poll_until(
                    lambda: (self.get_file_system_state(file_system_id) is None, None),
                    f"file system {file_system_id} to be deleted",
                    FILE_SYSTEM_TIMEOUT,
                )

        except ClientError as e:
            # Ignore if file system doesn't exist
            if e.response["Error"]["Code"] == "FileSystemNotFound":
                logger.info("EFS file system %s already deleted", file_system_id)
                return

            raise FixtureDeletionError(file_system_id, _error_message(e)) from e
        except (BotoCoreError, WaitTimeoutError) as e:
            raise FixtureDeletionError(file_system_id, str(e)) from e

        logger.info("Deleted EFS file system %s", file_system_id)

    def list_file_systems(self, cluster_name: str | None = None) -> list[dict[str, Any]]:
        """
        List file systems created by this package.

        Args:
            cluster_name: Only include file systems tagged for this cluster

        Returns:
            List of dicts with file_system_id, name, state, cluster and created
        """
        client = self._get_client("efs")
        paginator = client.get_paginator("describe_file_systems")

        results = []
        for page in paginator.paginate():
            for fs in page.get("FileSystems", []):
                tags = {t["Key"]: t["Value"] for t in fs.get("Tags", [])}
                if tags.get(MANAGED_BY_TAG_KEY) != MANAGED_BY_TAG_VALUE:
                    continue
                if cluster_name and cluster_tag_key(cluster_name) not in tags:
                    continue

                prefix = CLUSTER_TAG_KEY_FORMAT.format("")
                clusters = [k[len(prefix) :] for k in tags if k.startswith(prefix)]
                results.append(
                    {
                        "file_system_id": fs["FileSystemId"],
                        "name": tags.get("Name", fs.get("Name", "")),
                        "state": fs["LifeCycleState"],
                        "cluster": clusters[0] if clusters else None,
                        "created": fs.get("CreationTime"),
                    }
                )
        return results
