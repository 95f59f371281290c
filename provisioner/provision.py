# provisioner/provision.py
import logging
from dataclasses import dataclass
from enum import Enum

from provisioner.errors import InsufficientCapacity, NoCapacityAvailable, ProviderError
from provisioner.launcher import job_tag_filter
from provisioner.strategy import Strategy, resolve_strategies

log = logging.getLogger(__name__)


class ProvisionState(str, Enum):
    CHECKING_INVENTORY = "CHECKING_INVENTORY"
    ATTEMPTING = "ATTEMPTING"
    AWAITING_RUNNING = "AWAITING_RUNNING"
    AWAITING_READINESS = "AWAITING_READINESS"
    ACQUIRED = "ACQUIRED"
    FAILED = "FAILED"


@dataclass
class ProvisionResult:
    instance_id: str
    reused: bool
    strategy: str | None
    runner: dict | None = None


class Provisioner:
    """
    Acquire runner capacity for one job.

    CHECKING_INVENTORY -> (ATTEMPTING -> AWAITING_RUNNING) -> AWAITING_READINESS -> ACQUIRED.
    Any unhandled error leaves the state at FAILED and propagates to the caller.
    """

    def __init__(self, cfg, provider, launcher, poller, user_data_factory):
        self.cfg = cfg
        self.provider = provider
        self.launcher = launcher
        self.poller = poller
        self.user_data_factory = user_data_factory
        self.state = None

    def _transition(self, state: ProvisionState):
        log.info("Job %s: %s -> %s", self.cfg["github_job_id"], self.state and self.state.value, state.value)
        self.state = state

    def run(self) -> ProvisionResult:
        try:
            result = self._run()
        except Exception:
            self._transition(ProvisionState.FAILED)
            raise
        self._transition(ProvisionState.ACQUIRED)
        return result

    def _run(self) -> ProvisionResult:
        labels = [self.cfg["github_action_runner_label"]]

        self._transition(ProvisionState.CHECKING_INVENTORY)
        running = self.provider.instances_for_tags(job_tag_filter(self.cfg), states=["running"])
        if running:
            instance_id = running[0]["InstanceId"]
            log.info("Runner instance %s already running. Continuing as we can target it with jobs.", instance_id)
            self._transition(ProvisionState.AWAITING_READINESS)
            runner = self.poller.wait_for_runner(labels)
            return ProvisionResult(instance_id, reused=True, strategy=None, runner=runner)

        self._transition(ProvisionState.ATTEMPTING)
        instance_id, strategy = self.acquire(resolve_strategies(self.cfg["ec2_spot_instance_strategy"]))

        self._transition(ProvisionState.AWAITING_RUNNING)
        self.provider.wait_until_running(instance_id)

        self._transition(ProvisionState.AWAITING_READINESS)
        runner = self.poller.wait_for_runner(labels)
        return ProvisionResult(instance_id, reused=False, strategy=strategy, runner=runner)

    def acquire(self, strategies):
        """Try each strategy in order; only a capacity shortfall moves on to the next."""
        user_data = None
        for strategy in strategies:
            log.info("Starting instance with %s strategy", strategy)
            if user_data is None:
                user_data = self.user_data_factory()
            spec = self.launcher.build_launch_spec(strategy, user_data)
            try:
                instance_ids = self.launcher.launch(spec)
            except InsufficientCapacity:
                if strategy == Strategy.NONE:
                    raise
                log.info("Failed to create instance due to insufficient capacity with %s, trying fallback strategy next", strategy)
                continue
            if not instance_ids:
                raise ProviderError(f"Launch with {strategy} strategy returned no instance id")
            log.info("Launched instance %s with %s strategy", instance_ids[0], strategy)
            return instance_ids[0], strategy

        raise NoCapacityAvailable(f"No capacity available after trying strategies {list(strategies)}")
