# provisioner/launcher.py
import copy
import json
import logging

from provisioner.errors import ConfigError, InvalidStrategy
from provisioner.sizing import SizeOptimizer
from provisioner.strategy import Strategy

log = logging.getLogger(__name__)

OWNER_TAG = "EC2_ACTION_BUILDER"


def job_name(cfg) -> str:
    return f"{cfg['github_repo']}-{cfg['github_job_id']}"


def job_tag_filter(cfg) -> dict:
    """Tag filter that selects every instance created for this job."""
    return {"Name": job_name(cfg)}


def instance_tags(cfg):
    custom = cfg.get("ec2_instance_tags") or []
    if isinstance(custom, str):
        try:
            custom = json.loads(custom)
        except ValueError as e:
            raise ConfigError(f"ec2_instance_tags is not valid JSON: {e}")
    if not isinstance(custom, list) or not all(isinstance(t, dict) and "Key" in t and "Value" in t for t in custom):
        raise ConfigError('ec2_instance_tags must be a list of {"Key": ..., "Value": ...} objects')

    return [
        {"Key": "Name", "Value": job_name(cfg)},
        {"Key": "github_ref", "Value": cfg.get("github_ref") or ""},
        {"Key": "owner", "Value": OWNER_TAG},
        {"Key": "github_job_id", "Value": cfg["github_job_id"]},
        {"Key": "github_repo", "Value": cfg["github_repo"]},
        *custom,
    ]


def _spot_options(max_price: float) -> dict:
    return {
        "MarketType": "spot",
        "SpotOptions": {
            "InstanceInterruptionBehavior": "terminate",
            "MaxPrice": str(max_price),
            "SpotInstanceType": "one-time",
        },
    }


class InstanceLauncher:
    def __init__(self, cfg, provider, prices, optimizer=None):
        self.cfg = cfg
        self.provider = provider
        self.prices = prices
        self.optimizer = optimizer or SizeOptimizer(prices)
        self._zone = None

    @property
    def zone(self) -> str:
        if self._zone is None:
            self._zone = self.provider.subnet_availability_zone(self.cfg["ec2_subnet_id"])
        return self._zone

    def base_spec(self, user_data: str) -> dict:
        spec = {
            "ImageId": self.cfg["ec2_ami_id"],
            "InstanceInitiatedShutdownBehavior": "terminate",
            "InstanceMarketOptions": {},
            "InstanceType": self.cfg["ec2_instance_type"],
            "MaxCount": 1,
            "MinCount": 1,
            "SecurityGroupIds": [self.cfg["ec2_security_group_id"]],
            "SubnetId": self.cfg["ec2_subnet_id"],
            "Placement": {"AvailabilityZone": self.zone},
            "TagSpecifications": [{"ResourceType": "instance", "Tags": instance_tags(self.cfg)}],
            "BlockDeviceMappings": [
                {"DeviceName": "/dev/sda1", "Ebs": {"VolumeSize": self.cfg["ec2_volume_size"]}},
            ],
            "UserData": user_data,
        }
        if self.cfg.get("ec2_key_name"):
            spec["KeyName"] = self.cfg["ec2_key_name"]
        return spec

    def build_launch_spec(self, strategy: str, user_data: str) -> dict:
        size = self.cfg["ec2_instance_type"]
        spec = copy.deepcopy(self.base_spec(user_data))
        name = str(strategy).lower()

        if name == Strategy.SPOT_ONLY:
            spec["InstanceMarketOptions"] = _spot_options(self.prices.spot_price_for_size(size, self.zone))

        elif name == Strategy.BEST_EFFORT:
            on_demand = self.prices.price_for_size(size)
            spot = self.prices.spot_price_for_size(size, self.zone)
            # Bid the on-demand price, not the spot quote, to ride out spot drift
            if spot < on_demand:
                spec["InstanceMarketOptions"] = _spot_options(on_demand)
            else:
                log.info("Spot $%s is not below on-demand $%s for %s; using on-demand", spot, on_demand, size)

        elif name == Strategy.MAX_PERFORMANCE:
            on_demand = self.prices.price_for_size(size)
            spec["InstanceType"] = self.optimizer.best_spot_size_for_on_demand_price(size, self.zone)
            spec["InstanceMarketOptions"] = _spot_options(on_demand)

        elif name == Strategy.NONE:
            spec["InstanceMarketOptions"] = {}

        else:
            raise InvalidStrategy(f"Invalid value for ec2_spot_instance_strategy: {strategy!r}")

        return spec

    def launch(self, spec: dict):
        log.info(
            "Requesting %s instance (market=%s)",
            spec["InstanceType"],
            spec["InstanceMarketOptions"].get("MarketType", "on-demand"),
        )
        return self.provider.launch_instances(spec)
