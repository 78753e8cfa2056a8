"""Shared fixtures for unit tests."""

from unittest.mock import MagicMock

import boto3
import pytest
from kubernetes import client

from efs_csi_e2e.cloud import cluster_tag_key

CLUSTER_NAME = "test-cluster"
REGION = "us-east-1"
EXAMPLE_AMI_ID = "ami-12c6146b"


@pytest.fixture
def cluster(mock_cloud):
    """
    A mocked cluster: two running nodes in us-east-1a, one in us-east-1b,
    plus an untagged instance that must be ignored.
    """
    ec2 = boto3.client("ec2", region_name=REGION)
    vpc_id = ec2.create_vpc(CidrBlock="10.0.0.0/16")["Vpc"]["VpcId"]
    subnets = {
        zone: ec2.create_subnet(VpcId=vpc_id, CidrBlock=cidr, AvailabilityZone=zone)["Subnet"][
            "SubnetId"
        ]
        for zone, cidr in (("us-east-1a", "10.0.1.0/24"), ("us-east-1b", "10.0.2.0/24"))
    }
    group_id = ec2.create_security_group(
        GroupName="cluster-nodes", Description="cluster nodes", VpcId=vpc_id
    )["GroupId"]

    node_tags = [
        {
            "ResourceType": "instance",
            "Tags": [{"Key": cluster_tag_key(CLUSTER_NAME), "Value": "owned"}],
        }
    ]
    for zone, count in (("us-east-1a", 2), ("us-east-1b", 1)):
        ec2.run_instances(
            ImageId=EXAMPLE_AMI_ID,
            MinCount=count,
            MaxCount=count,
            InstanceType="t3.medium",
            SubnetId=subnets[zone],
            SecurityGroupIds=[group_id],
            TagSpecifications=node_tags,
        )
    ec2.run_instances(
        ImageId=EXAMPLE_AMI_ID,
        MinCount=1,
        MaxCount=1,
        InstanceType="t3.micro",
        SubnetId=subnets["us-east-1a"],
    )

    return {
        "name": CLUSTER_NAME,
        "region": REGION,
        "vpc_id": vpc_id,
        "subnets": subnets,
        "security_group_id": group_id,
    }


@pytest.fixture
def core_api():
    """CoreV1Api mock whose created pods are named pod-1, pod-2, ..."""
    api = MagicMock()
    counter = {"n": 0}

    def create_pod(namespace, body):
        counter["n"] += 1
        return client.V1Pod(metadata=client.V1ObjectMeta(name=f"pod-{counter['n']}"))

    api.create_namespaced_pod.side_effect = create_pod
    return api
