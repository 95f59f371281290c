# runners/github_client.py
import logging

import requests

from provisioner.errors import RunnerServiceError

log = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
RUNNER_RELEASES_URL = f"{GITHUB_API}/repos/actions/runner/releases/latest"


def _label_names(runner):
    return {label.get("name") for label in runner.get("labels", [])}


class GithubRunnerClient:
    """
    Self-hosted runner registrations for one repository.

    Runners are matched by label: a runner matches when it carries every
    requested label.
    """

    def __init__(self, token: str, repo: str, base_url: str = GITHUB_API, session=None, timeout: int = 30):
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    @property
    def repo_url(self) -> str:
        return f"https://github.com/{self.repo}"

    def _request(self, method: str, path: str, **kwargs):
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RunnerServiceError(f"{method} {url} failed: {e}")
        return response

    def runner_version(self, configured=None) -> str:
        if configured:
            return configured.lstrip("v")
        tag = self._request("GET", RUNNER_RELEASES_URL).json()["tag_name"]
        return tag.lstrip("v")

    def runners_with_labels(self, labels):
        wanted = set(labels)
        runners = []
        page = 1
        while True:
            data = self._request(
                "GET",
                f"/repos/{self.repo}/actions/runners",
                params={"per_page": 100, "page": page},
            ).json()
            batch = data.get("runners", [])
            runners.extend(batch)
            if not batch or len(runners) >= data.get("total_count", 0):
                break
            page += 1
        return [r for r in runners if wanted <= _label_names(r)]

    def registration_token(self) -> str:
        data = self._request("POST", f"/repos/{self.repo}/actions/runners/registration-token").json()
        return data["token"]

    def delete_runner(self, runner_id) -> bool:
        url = f"{self.base_url}/repos/{self.repo}/actions/runners/{runner_id}"
        try:
            response = self.session.delete(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RunnerServiceError(f"DELETE {url} failed: {e}")
        return response.status_code == 204

    def remove_runners_with_labels(self, labels) -> bool:
        """Delete every matching runner; True only if all deletions succeeded."""
        runners = self.runners_with_labels(labels)
        log.info("Found existing runners: %s", [r["id"] for r in runners])
        deleted_all = True
        for runner in runners:
            try:
                ok = self.delete_runner(runner["id"])
            except RunnerServiceError as e:
                log.error("Failed to delete runner %s: %s", runner["id"], e)
                ok = False
            if not ok:
                log.warning("Runner %s (%s) was not deleted", runner["id"], runner.get("name"))
            deleted_all = deleted_all and ok
        return deleted_all
