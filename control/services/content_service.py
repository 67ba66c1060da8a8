"""
Content Service Client
======================
Issues and revokes transient API keys against the content ingestion API.

Build containers receive a transient key instead of the admin key, so a
leaked build environment cannot be used to administer the content service.
The admin key used here must have admin rights.
"""
import logging
from urllib.parse import quote

import httpx

from control.core.config import (
    CONTENT_SERVICE_URL,
    CONTENT_SERVICE_ADMIN_APIKEY,
    TLS_VERIFY,
    HTTP_TIMEOUT,
)
from control.core.constants import USER_AGENT
from control.services.errors import ContentServiceError

logger = logging.getLogger(__name__)


class ContentService:

    def __init__(
        self,
        toolbelt,
        base_url: str = CONTENT_SERVICE_URL,
        api_key: str = CONTENT_SERVICE_ADMIN_APIKEY,
        verify: bool = TLS_VERIFY,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.toolbelt = toolbelt
        self.base_url = base_url
        self.verify = verify
        self.timeout = timeout
        self.headers = {
            "Authorization": f"deconst {api_key}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            verify=self.verify,
            timeout=self.timeout,
        )

    async def issue_api_key(self, name: str) -> str:
        """Issue a new API key named ``name`` and return it."""
        async with self._client() as client:
            response = await client.post("/keys", params={"named": name})

        if response.status_code != 200:
            self.toolbelt.error("Unable to issue a new API key for the staging content service.")
            self.toolbelt.error("Status: %s", response.status_code)
            self.toolbelt.error("Does the staging API key have admin rights?")
            raise ContentServiceError("Unable to issue API key", response.status_code)

        logger.debug("Issued content service API key %s", name)
        return response.json()["apikey"]

    async def revoke_api_key(self, api_key: str) -> None:
        async with self._client() as client:
            response = await client.delete(f"/keys/{quote(api_key, safe='')}")

        if response.status_code != 204:
            self.toolbelt.error("Unable to revoke the transient API key from the content service.")
            self.toolbelt.error("Status: %s", response.status_code)
            raise ContentServiceError("Unable to revoke API key", response.status_code)
