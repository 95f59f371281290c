# provisioner/ec2.py
import logging
from datetime import datetime, timezone

from botocore.exceptions import ClientError, WaiterError

from provisioner.errors import InsufficientCapacity, ProviderError

log = logging.getLogger(__name__)

CAPACITY_ERROR_CODE = "InsufficientInstanceCapacity"


def _error_code(e: ClientError):
    return e.response.get("Error", {}).get("Code")


class Ec2Provider:
    """
    Compute provider backed by the EC2 API.

    All botocore errors are translated here: the capacity error code becomes
    InsufficientCapacity, anything else becomes ProviderError.
    """

    def __init__(self, session, region: str):
        self.region = region
        self.client = session.client("ec2", region_name=region)

    def launch_instances(self, spec: dict):
        try:
            resp = self.client.run_instances(**spec)
        except ClientError as e:
            if _error_code(e) == CAPACITY_ERROR_CODE:
                raise InsufficientCapacity(str(e))
            raise ProviderError(f"run_instances failed: {e}")
        return [i["InstanceId"] for i in resp.get("Instances", []) if i.get("InstanceId")]

    def instances_for_tags(self, tag_filters: dict, states=None):
        filters = [{"Name": f"tag:{k}", "Values": [v]} for k, v in tag_filters.items()]
        if states:
            filters.append({"Name": "instance-state-name", "Values": list(states)})

        instances = []
        try:
            paginator = self.client.get_paginator("describe_instances")
            for page in paginator.paginate(Filters=filters):
                for reservation in page.get("Reservations", []):
                    instances.extend(reservation.get("Instances", []))
        except ClientError as e:
            raise ProviderError(f"describe_instances failed for {filters}: {e}")
        return instances

    def describe_instance_sizes(self, family: str, include_bare_metal: bool = False):
        filters = [
            {"Name": "instance-type", "Values": [f"{family}.*"]},
            {"Name": "bare-metal", "Values": [str(include_bare_metal).lower()]},
        ]
        sizes = []
        try:
            paginator = self.client.get_paginator("describe_instance_types")
            for page in paginator.paginate(Filters=filters):
                for item in page.get("InstanceTypes", []):
                    vcpu = item.get("VCpuInfo", {}).get("DefaultVCpus")
                    if item.get("InstanceType") and vcpu:
                        sizes.append({"name": item["InstanceType"], "vcpu": vcpu})
        except ClientError as e:
            raise ProviderError(f"describe_instance_types failed for {family}: {e}")
        return sizes

    def spot_price_history(self, size: str, zone: str):
        try:
            resp = self.client.describe_spot_price_history(
                AvailabilityZone=zone,
                InstanceTypes=[size],
                ProductDescriptions=["Linux/UNIX"],
                StartTime=datetime.now(timezone.utc),
            )
        except ClientError as e:
            raise ProviderError(f"describe_spot_price_history failed for {size}: {e}")
        history = resp.get("SpotPriceHistory", [])
        # Most recent first
        history.sort(key=lambda h: h.get("Timestamp") or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return [{"price": float(h["SpotPrice"]), "timestamp": h.get("Timestamp")} for h in history]

    def subnet_availability_zone(self, subnet_id: str):
        try:
            subnets = self.client.describe_subnets(SubnetIds=[subnet_id]).get("Subnets", [])
        except ClientError as e:
            raise ProviderError(f"Failed to lookup subnet az for {subnet_id}: {e}")
        if not subnets:
            raise ProviderError(f"Subnet {subnet_id} not found")
        return subnets[0]["AvailabilityZone"]

    def wait_until_running(self, instance_id: str):
        waiter = self.client.get_waiter("instance_running")
        try:
            waiter.wait(InstanceIds=[instance_id])
        except WaiterError as e:
            raise ProviderError(f"EC2 instance {instance_id} init error: {e}")
        log.info("EC2 instance %s is up and running", instance_id)

    def terminate_instances(self, instance_ids):
        if not instance_ids:
            return
        try:
            self.client.terminate_instances(InstanceIds=list(instance_ids))
        except ClientError as e:
            raise ProviderError(f"Failed to terminate instances {', '.join(instance_ids)}: {e}")
        log.info("EC2 instances %s are terminated", ", ".join(instance_ids))
