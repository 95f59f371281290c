# provisioner/aws_session.py
import time
import logging

import boto3
from botocore.exceptions import ClientError

from provisioner.errors import ProviderError

log = logging.getLogger(__name__)


def build_session(cfg):
    """
    Build the boto3 session used by every EC2 and pricing call in this run.

    When aws_assume_role is set, the configured credentials are exchanged once
    for cross-account role credentials and the returned session carries those.
    """
    base = boto3.Session(
        aws_access_key_id=cfg.get("aws_access_key_id"),
        aws_secret_access_key=cfg.get("aws_secret_access_key"),
        region_name=cfg["aws_region"],
    )
    if not cfg.get("aws_assume_role"):
        return base

    sts = base.client("sts", region_name=cfg["aws_region"])
    session_name = f"ec2-action-builder-{cfg['github_job_id']}-{int(time.time() * 1000)}"
    try:
        resp = sts.assume_role(RoleArn=cfg["aws_iam_role_arn"], RoleSessionName=session_name)
    except ClientError as e:
        raise ProviderError(f"STS assume role failed: {e}")

    creds = resp.get("Credentials")
    if not creds:
        raise ProviderError("STS returned empty response")

    log.info("Assumed role %s", cfg["aws_iam_role_arn"])
    return boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=cfg["aws_region"],
    )
