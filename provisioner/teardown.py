# provisioner/teardown.py
import logging

from provisioner.errors import TeardownPartialFailure
from provisioner.launcher import job_tag_filter

log = logging.getLogger(__name__)


class Teardown:
    """
    Release everything tagged or labelled for a job. Best effort: errors are
    logged and absorbed so teardown never masks an earlier failure.
    """

    def __init__(self, cfg, provider, runner_client):
        self.cfg = cfg
        self.provider = provider
        self.runner_client = runner_client

    def terminate_instances(self):
        instances = self.provider.instances_for_tags(job_tag_filter(self.cfg))
        ids = [i["InstanceId"] for i in instances]
        if ids:
            log.info("Terminating instances %s", ", ".join(ids))
        self.provider.terminate_instances(ids)

    def remove_runners(self):
        labels = [self.cfg["github_action_runner_label"]]
        if not self.runner_client.remove_runners_with_labels(labels):
            raise TeardownPartialFailure(f"Failed to remove all runners with labels {labels}")

    def run(self) -> bool:
        log.info("Starting instance cleanup")
        ok = True
        try:
            self.terminate_instances()
        except Exception as e:
            log.error("Instance termination failed: %s", e)
            ok = False

        log.info("Clearing previously installed runners")
        try:
            self.remove_runners()
            log.info("Finished runner cleanup")
        except TeardownPartialFailure as e:
            log.warning("%s. Continuing, but failure expected!", e)
            ok = False
        except Exception as e:
            log.error("Runner cleanup failed: %s", e)
            ok = False
        return ok
