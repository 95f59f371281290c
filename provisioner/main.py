# provisioner/main.py
import argparse
import logging
import logging.config
import sys

import yaml

from provisioner.aws_session import build_session
from provisioner.config_loader import load_runtime_config, validate_config
from provisioner.ec2 import Ec2Provider
from provisioner.errors import ProvisioningError
from provisioner.launcher import InstanceLauncher
from provisioner.pricing import PriceResolver
from provisioner.provision import Provisioner
from provisioner.teardown import Teardown
from provisioner.userdata import build_user_data
from runners.github_client import GithubRunnerClient
from runners.readiness import ReadinessPoller

log = logging.getLogger("provisioner.main")


def load_logging_config(path="config/logging.yaml"):
    try:
        with open(path) as f:
            cfg = yaml.safe_load(f)
        logging.config.dictConfig(cfg)
    except (OSError, ValueError, TypeError, yaml.YAMLError):
        logging.basicConfig(
            level=logging.INFO,
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","msg":"%(message)s"}',
        )


class Components:
    """Clients for one invocation, sharing a single AWS session."""

    def __init__(self, cfg):
        self.cfg = cfg
        session = build_session(cfg)
        self.provider = Ec2Provider(session, cfg["aws_region"])
        self.prices = PriceResolver.from_session(session, self.provider, cfg["aws_region"])
        self.runner_client = GithubRunnerClient(cfg["github_token"], cfg["github_repo"])

    def provisioner(self):
        launcher = InstanceLauncher(self.cfg, self.provider, self.prices)
        poller = ReadinessPoller(
            self.runner_client,
            quiet_period=self.cfg["runner_quiet_period"],
            interval=self.cfg["runner_poll_interval"],
            timeout=self.cfg["runner_timeout"],
        )
        return Provisioner(
            self.cfg,
            self.provider,
            launcher,
            poller,
            lambda: build_user_data(self.cfg, self.runner_client),
        )

    def teardown(self):
        return Teardown(self.cfg, self.provider, self.runner_client)


def stop(components) -> bool:
    try:
        return components.teardown().run()
    except Exception as e:
        log.error("Cleanup aborted: %s", e)
        return False


def start(components):
    result = components.provisioner().run()
    log.info(
        "Runner capacity ready: instance=%s reused=%s strategy=%s",
        result.instance_id,
        result.reused,
        result.strategy,
    )
    return result


def run(action, components) -> int:
    if action == "stop":
        stop(components)
        return 0
    if action == "restart":
        stop(components)

    try:
        start(components)
        return 0
    except ProvisioningError as e:
        log.error("%s: %s", type(e).__name__, e)
    except Exception:
        log.exception("Unexpected failure while starting runner capacity")
    stop(components)
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(description="Provision an EC2 instance as GitHub Actions runner capacity for one job.")
    parser.add_argument("action", nargs="?", choices=["start", "stop", "restart"], help="Defaults to the configured action (start)")
    parser.add_argument("--config", default=None, help="Runtime config path (default config/runtime.yaml)")
    parser.add_argument("--logging-config", default="config/logging.yaml", help="Logging dictConfig YAML path")
    args = parser.parse_args(argv)

    load_logging_config(args.logging_config)

    try:
        cfg = load_runtime_config(args.config)
        action = args.action or cfg["action"]
        if action not in ("start", "stop", "restart"):
            raise SystemExit(f"Unexpected action: {action}")
        validate_config(cfg, action)
        components = Components(cfg)
    except ProvisioningError as e:
        log.error("%s: %s", type(e).__name__, e)
        return 1

    return run(action, components)


if __name__ == "__main__":
    sys.exit(main())
