# provisioner/config_loader.py
import os
import yaml
from pathlib import Path

from provisioner.errors import ConfigError

RUNTIME_CONFIG_PATH = Path("config/runtime.yaml")

DEFAULTS = {
    "action": "start",
    "aws_assume_role": False,
    "ec2_spot_instance_strategy": "none",
    "ec2_instance_ttl": 60,
    "ec2_volume_size": 32,
    "runner_count": 50,
    "runner_quiet_period": 30,
    "runner_poll_interval": 10,
    "runner_timeout": 300,
}

REQUIRED_FOR_STOP = ["aws_region", "github_token", "github_repo", "github_job_id"]
REQUIRED_FOR_START = REQUIRED_FOR_STOP + [
    "ec2_instance_type",
    "ec2_ami_id",
    "ec2_subnet_id",
    "ec2_security_group_id",
]

INT_KEYS = (
    "ec2_instance_ttl",
    "ec2_volume_size",
    "runner_count",
    "runner_quiet_period",
    "runner_poll_interval",
    "runner_timeout",
)


def _env(key):
    # GitHub Actions exposes inputs as INPUT_<NAME>
    upper = key.upper()
    return os.getenv(upper) or os.getenv(f"INPUT_{upper}")


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes")


def load_runtime_config(path=None):
    """
    Loads runtime configuration for the provisioner.
    Priority:
      1) Environment variables (plain or INPUT_ prefixed)
      2) config/runtime.yaml (if present)
      3) Built-in defaults
    """
    cfg = {}
    path = Path(path) if path else RUNTIME_CONFIG_PATH

    if path.exists():
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}

    keys = set(DEFAULTS) | set(REQUIRED_FOR_START) | {
        "aws_access_key_id",
        "aws_secret_access_key",
        "aws_iam_role_arn",
        "ec2_key_name",
        "ec2_instance_tags",
        "github_ref",
        "github_action_runner_version",
        "github_action_runner_label",
    }

    result = {}
    for key in sorted(keys):
        value = _env(key)
        if value is None:
            value = cfg.get(key)
        if value is None:
            value = DEFAULTS.get(key)
        result[key] = value

    # Fall back to the variables every Actions runner provides
    result["github_repo"] = result["github_repo"] or os.getenv("GITHUB_REPOSITORY")
    result["github_ref"] = result["github_ref"] or os.getenv("GITHUB_REF")
    result["aws_region"] = result["aws_region"] or os.getenv("AWS_DEFAULT_REGION")

    for key in INT_KEYS:
        try:
            result[key] = int(result[key])
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {result[key]!r}")

    result["aws_assume_role"] = _as_bool(result["aws_assume_role"])
    result["action"] = str(result["action"]).lower()
    result["ec2_spot_instance_strategy"] = str(result["ec2_spot_instance_strategy"]).lower()
    if not result["github_action_runner_label"]:
        result["github_action_runner_label"] = result["github_job_id"]
    result["raw"] = cfg
    return result


def validate_config(cfg, action="start"):
    required = REQUIRED_FOR_START if action in ("start", "restart") else REQUIRED_FOR_STOP
    missing = [k for k in required if not cfg.get(k)]
    if cfg.get("aws_assume_role") and not cfg.get("aws_iam_role_arn"):
        missing.append("aws_iam_role_arn")
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
