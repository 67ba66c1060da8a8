"""
GitHub Client
=============
Low-level requests against the GitHub API on behalf of the project owner.

Authentication uses the owner's connected GitHub access token. A job whose
owner never connected GitHub cannot build a client at all.
"""
import logging
from typing import Any, Dict

import httpx

from control.core.config import GITHUB_API_URL, HTTP_TIMEOUT
from control.core.constants import USER_AGENT
from control.services.errors import GitHubError, RepositoryNotFound

logger = logging.getLogger(__name__)


class GitHub:

    def __init__(self, toolbelt, base_url: str = GITHUB_API_URL, timeout: float = HTTP_TIMEOUT) -> None:
        token = toolbelt.job.github_token
        if not token:
            raise GitHubError("Project owner is not connected to GitHub")

        self.toolbelt = toolbelt
        self.base_url = base_url
        self.timeout = timeout
        self.headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, headers=self.headers, timeout=self.timeout)

    async def get_repository(self, repo_name: str) -> Dict[str, Any]:
        """Fetch repository metadata for 'owner/repo'."""
        async with self._client() as client:
            response = await client.get(f"/repos/{repo_name}")

        if response.status_code == 404:
            raise RepositoryNotFound("Unable to see GitHub repository", 404)
        if response.status_code >= 400:
            logger.error("GitHub repository lookup for %s failed: HTTP %d",
                         repo_name, response.status_code)
            raise GitHubError("Unable to fetch GitHub repository", response.status_code)

        return response.json()

    async def post_comment(self, repo_name: str, pull_request_number: int, comment: str) -> None:
        url = f"/repos/{repo_name}/issues/{pull_request_number}/comments"

        async with self._client() as client:
            response = await client.post(url, json={"body": comment})

        if response.status_code != 201:
            self.toolbelt.error("I couldn't post the comment to GitHub!")
            self.toolbelt.error(
                "The GitHub API responded with status %s:\n%s", response.status_code, response.text
            )
            raise GitHubError("Unable to post the comment", response.status_code)

        logger.debug("Posted comment on %s#%s", repo_name, pull_request_number)
