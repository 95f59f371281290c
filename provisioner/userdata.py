# provisioner/userdata.py
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from provisioner.errors import ConfigError

log = logging.getLogger(__name__)

MAX_TOKEN_WORKERS = 10

RUNNER_TEMPLATE = """
(
  ./config.sh --unattended --ephemeral --url {url} --token {token} --labels {label} --name {name}
  ./run.sh
) &"""


def fetch_registration_tokens(runner_client, count: int):
    """Request `count` registration tokens concurrently; any failure aborts the batch."""
    pool = ThreadPoolExecutor(max_workers=max(1, min(count, MAX_TOKEN_WORKERS)))
    try:
        futures = [pool.submit(runner_client.registration_token) for _ in range(count)]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for f in done:
            if f.exception() is not None:
                raise f.exception()
        return [f.result() for f in futures]
    finally:
        pool.shutdown(wait=True, cancel_futures=True)


def build_user_data(cfg, runner_client) -> str:
    """Boot script that installs and starts one ephemeral runner per token."""
    label = cfg.get("github_action_runner_label")
    if not label:
        raise ConfigError("failed to obtain job ID for runner label")

    version = runner_client.runner_version(cfg.get("github_action_runner_version"))
    tokens = fetch_registration_tokens(runner_client, cfg["runner_count"])
    log.info("Fetched %d runner registration tokens (runner v%s)", len(tokens), version)

    runners = [
        RUNNER_TEMPLATE.format(
            url=runner_client.repo_url,
            token=token,
            label=label,
            name=f"{cfg['github_job_id']}-$(hostname)-ec2-{i}",
        )
        for i, token in enumerate(tokens)
    ]

    lines = [
        "#!/bin/bash",
        f"shutdown -P +{cfg['ec2_instance_ttl']}",
        "CURRENT_PATH=$(pwd)",
        'echo "shutdown -P +1" > $CURRENT_PATH/shutdown_script.sh',
        "chmod +x $CURRENT_PATH/shutdown_script.sh",
        "export ACTIONS_RUNNER_HOOK_JOB_COMPLETED=$CURRENT_PATH/shutdown_script.sh",
        "mkdir -p actions-runner && cd actions-runner",
        'echo "ACTIONS_RUNNER_HOOK_JOB_COMPLETED=$CURRENT_PATH/shutdown_script.sh" > .env',
        f"GH_RUNNER_VERSION={version}",
        'case $(uname -m) in aarch64) ARCH="arm64" ;; amd64|x86_64) ARCH="x64" ;; esac && export RUNNER_ARCH=${ARCH}',
        "curl -O -L https://github.com/actions/runner/releases/download/v${GH_RUNNER_VERSION}/"
        "actions-runner-linux-${RUNNER_ARCH}-${GH_RUNNER_VERSION}.tar.gz",
        "tar xzf ./actions-runner-linux-${RUNNER_ARCH}-${GH_RUNNER_VERSION}.tar.gz",
        "export RUNNER_ALLOW_RUNASROOT=1",
        '[ -n "$(command -v yum)" ] && yum install libicu -y',
        *runners,
        "wait",
    ]
    # boto3 base64-encodes UserData for run_instances
    return "\n".join(lines)
