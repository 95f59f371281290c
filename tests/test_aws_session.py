import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from provisioner.aws_session import build_session
from provisioner.errors import ProviderError
from fakes import make_config


class TestBuildSession(unittest.TestCase):
    @patch("provisioner.aws_session.boto3.Session")
    def test_plain_session(self, mock_session):
        session = build_session(make_config())
        self.assertIs(session, mock_session.return_value)
        mock_session.return_value.client.assert_not_called()

    @patch("provisioner.aws_session.boto3.Session")
    def test_assumed_role_session_built_once(self, mock_session):
        base, assumed = MagicMock(), MagicMock()
        mock_session.side_effect = [base, assumed]
        base.client.return_value.assume_role.return_value = {"Credentials": {
            "AccessKeyId": "AK", "SecretAccessKey": "SK", "SessionToken": "ST",
        }}
        cfg = make_config(aws_assume_role=True, aws_iam_role_arn="arn:aws:iam::1:role/r")

        self.assertIs(build_session(cfg), assumed)
        kwargs = base.client.return_value.assume_role.call_args.kwargs
        self.assertEqual(kwargs["RoleArn"], "arn:aws:iam::1:role/r")
        self.assertTrue(kwargs["RoleSessionName"].startswith("ec2-action-builder-job-1-"))
        self.assertEqual(mock_session.call_args.kwargs["aws_session_token"], "ST")

    @patch("provisioner.aws_session.boto3.Session")
    def test_assume_role_failure(self, mock_session):
        mock_session.return_value.client.return_value.assume_role.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "AssumeRole"
        )
        with self.assertRaises(ProviderError):
            build_session(make_config(aws_assume_role=True, aws_iam_role_arn="arn"))


if __name__ == '__main__':
    unittest.main()
