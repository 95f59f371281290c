# runners/readiness.py
import time
import logging

from provisioner.errors import RunnerRegistrationTimeout

log = logging.getLogger(__name__)


class ReadinessPoller:
    """
    Waits for at least one online runner carrying the job's labels.

    The first check happens after `quiet_period` seconds, then every
    `interval` seconds until one matching runner is online or the accumulated
    wait exceeds `timeout`.
    """

    def __init__(self, runner_client, quiet_period=30, interval=10, timeout=300, sleep=time.sleep):
        self.runner_client = runner_client
        self.quiet_period = quiet_period
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep

    def wait_for_runner(self, labels):
        log.info("Waiting %ss before polling for runners", self.quiet_period)
        self.sleep(self.quiet_period)
        log.info("Polling for runners every %ss", self.interval)

        waited = 0
        while waited <= self.timeout:
            for runner in self.runner_client.runners_with_labels(labels):
                if runner.get("status") == "online":
                    log.info(
                        "Runner %s with labels %s is online. Continuing assuming other runners will come online.",
                        runner.get("name"),
                        labels,
                    )
                    return runner
            if waited + self.interval > self.timeout:
                break
            log.info("Waiting for runners... (%ss elapsed)", waited)
            self.sleep(self.interval)
            waited += self.interval

        raise RunnerRegistrationTimeout(
            f"A timeout of {self.timeout}s is exceeded waiting for a runner with labels {labels}. "
            "Please ensure your EC2 instance has access to the Internet."
        )
