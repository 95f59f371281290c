import unittest
from unittest.mock import MagicMock

import requests

from provisioner.errors import RunnerServiceError
from runners.github_client import GithubRunnerClient


def response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return resp


def gh_runner(runner_id, status, *labels):
    return {"id": runner_id, "name": f"r{runner_id}", "status": status, "labels": [{"name": l} for l in labels]}


class TestGithubRunnerClient(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.client = GithubRunnerClient("tok", "octo/repo", session=self.session)

    def test_auth_header(self):
        self.assertEqual(self.session.headers["Authorization"], "Bearer tok")

    def test_runners_with_labels_paginates_and_filters(self):
        self.session.request.side_effect = [
            response(payload={"total_count": 3, "runners": [gh_runner(1, "online", "self-hosted", "job-1"), gh_runner(2, "online", "job-2")]}),
            response(payload={"total_count": 3, "runners": [gh_runner(3, "offline", "job-1")]}),
        ]
        found = self.client.runners_with_labels(["job-1"])
        self.assertEqual([r["id"] for r in found], [1, 3])
        self.assertEqual(self.session.request.call_count, 2)
        self.assertEqual(self.session.request.call_args.kwargs["params"]["page"], 2)

    def test_no_runners(self):
        self.session.request.return_value = response(payload={"total_count": 0, "runners": []})
        self.assertEqual(self.client.runners_with_labels(["job-1"]), [])

    def test_registration_token(self):
        self.session.request.return_value = response(201, {"token": "ABC"})
        self.assertEqual(self.client.registration_token(), "ABC")
        method, url = self.session.request.call_args.args
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/repos/octo/repo/actions/runners/registration-token"))

    def test_http_errors_are_wrapped(self):
        self.session.request.return_value = response(403)
        with self.assertRaises(RunnerServiceError):
            self.client.registration_token()

    def test_runner_version(self):
        self.assertEqual(self.client.runner_version("v2.300.0"), "2.300.0")
        self.session.request.return_value = response(payload={"tag_name": "v2.311.0"})
        self.assertEqual(self.client.runner_version(), "2.311.0")

    def test_remove_runners_tracks_each_deletion(self):
        self.session.request.return_value = response(
            payload={"total_count": 2, "runners": [gh_runner(1, "online", "job-1"), gh_runner(2, "offline", "job-1")]}
        )
        self.session.delete.side_effect = [response(204), response(422)]
        self.assertFalse(self.client.remove_runners_with_labels(["job-1"]))
        self.assertEqual(self.session.delete.call_count, 2)

    def test_remove_runners_continues_after_connection_error(self):
        self.session.request.return_value = response(payload={"total_count": 3, "runners": [
            gh_runner(1, "online", "job-1"), gh_runner(2, "offline", "job-1"), gh_runner(3, "online", "job-1"),
        ]})
        self.session.delete.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            response(204),
            response(204),
        ]
        self.assertFalse(self.client.remove_runners_with_labels(["job-1"]))
        self.assertEqual(self.session.delete.call_count, 3)
        deleted = [c.args[0].rsplit("/", 1)[-1] for c in self.session.delete.call_args_list]
        self.assertEqual(deleted, ["1", "2", "3"])

    def test_remove_runners_all_deleted(self):
        self.session.request.return_value = response(payload={"total_count": 1, "runners": [gh_runner(1, "online", "job-1")]})
        self.session.delete.return_value = response(204)
        self.assertTrue(self.client.remove_runners_with_labels(["job-1"]))


if __name__ == '__main__':
    unittest.main()
