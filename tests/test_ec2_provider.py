import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, WaiterError

from provisioner.ec2 import Ec2Provider
from provisioner.errors import InsufficientCapacity, ProviderError


def client_error(code, op="RunInstances"):
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class TestEc2Provider(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        session = MagicMock()
        session.client.return_value = self.client
        self.provider = Ec2Provider(session, "us-east-1")

    def test_launch_returns_ids(self):
        self.client.run_instances.return_value = {"Instances": [{"InstanceId": "i-1"}]}
        self.assertEqual(self.provider.launch_instances({"InstanceType": "m5.large"}), ["i-1"])
        self.client.run_instances.assert_called_once_with(InstanceType="m5.large")

    def test_capacity_error_is_translated(self):
        self.client.run_instances.side_effect = client_error("InsufficientInstanceCapacity")
        with self.assertRaises(InsufficientCapacity):
            self.provider.launch_instances({})

    def test_other_errors_are_provider_errors(self):
        self.client.run_instances.side_effect = client_error("UnauthorizedOperation")
        with self.assertRaises(ProviderError) as ctx:
            self.provider.launch_instances({})
        self.assertNotIsInstance(ctx.exception, InsufficientCapacity)

    def test_instances_for_tags_drains_pages(self):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Reservations": [{"Instances": [{"InstanceId": "i-1"}]}]},
            {"Reservations": [{"Instances": [{"InstanceId": "i-2"}, {"InstanceId": "i-3"}]}]},
        ]
        self.client.get_paginator.return_value = paginator
        found = self.provider.instances_for_tags({"Name": "repo-job"}, states=["running"])
        self.assertEqual([i["InstanceId"] for i in found], ["i-1", "i-2", "i-3"])
        filters = paginator.paginate.call_args.kwargs["Filters"]
        self.assertEqual(filters[0], {"Name": "tag:Name", "Values": ["repo-job"]})
        self.assertEqual(filters[1], {"Name": "instance-state-name", "Values": ["running"]})

    def test_describe_instance_sizes_drains_pages(self):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"InstanceTypes": [{"InstanceType": "c5.xlarge", "VCpuInfo": {"DefaultVCpus": 4}}]},
            {"InstanceTypes": [{"InstanceType": "c5.large", "VCpuInfo": {"DefaultVCpus": 2}}]},
        ]
        self.client.get_paginator.return_value = paginator
        sizes = self.provider.describe_instance_sizes("c5")
        self.assertEqual(sizes, [{"name": "c5.xlarge", "vcpu": 4}, {"name": "c5.large", "vcpu": 2}])
        self.client.get_paginator.assert_called_once_with("describe_instance_types")

    def test_spot_history_most_recent_first(self):
        self.client.describe_spot_price_history.return_value = {"SpotPriceHistory": [
            {"SpotPrice": "0.050", "Timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            {"SpotPrice": "0.040", "Timestamp": datetime(2024, 1, 2, tzinfo=timezone.utc)},
        ]}
        history = self.provider.spot_price_history("m5.large", "us-east-1a")
        self.assertEqual([h["price"] for h in history], [0.04, 0.05])
        kwargs = self.client.describe_spot_price_history.call_args.kwargs
        self.assertEqual(kwargs["ProductDescriptions"], ["Linux/UNIX"])
        self.assertEqual(kwargs["AvailabilityZone"], "us-east-1a")

    def test_terminate_empty_is_noop(self):
        self.provider.terminate_instances([])
        self.client.terminate_instances.assert_not_called()

    def test_terminate(self):
        self.provider.terminate_instances(["i-1", "i-2"])
        self.client.terminate_instances.assert_called_once_with(InstanceIds=["i-1", "i-2"])

    def test_wait_failure(self):
        waiter = MagicMock()
        waiter.wait.side_effect = WaiterError("InstanceRunning", "failed", {})
        self.client.get_waiter.return_value = waiter
        with self.assertRaises(ProviderError):
            self.provider.wait_until_running("i-1")

    def test_subnet_az(self):
        self.client.describe_subnets.return_value = {"Subnets": [{"AvailabilityZone": "us-east-1c"}]}
        self.assertEqual(self.provider.subnet_availability_zone("subnet-1"), "us-east-1c")


if __name__ == '__main__':
    unittest.main()
