"""
Presenter Client
Maps content IDs to the URLs the presenter serves them at.
"""
from typing import Any, List
from urllib.parse import quote

import httpx

from control.core.config import PRESENTER_URL, TLS_VERIFY, HTTP_TIMEOUT
from control.core.constants import USER_AGENT
from control.services.errors import PresenterError


class Presenter:

    def __init__(
        self,
        toolbelt,
        base_url: str = PRESENTER_URL,
        verify: bool = TLS_VERIFY,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.toolbelt = toolbelt
        self.base_url = base_url
        self.verify = verify
        self.timeout = timeout
        self.headers = {"Accept": "application/json", "User-Agent": USER_AGENT}

    async def whereis(self, content_id: str) -> List[Any]:
        """Return the presenter's mappings for ``content_id``."""
        url = f"/_api/whereis/{quote(content_id, safe='')}"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            verify=self.verify,
            timeout=self.timeout,
        ) as client:
            response = await client.get(url)

        if response.status_code != 200:
            self.toolbelt.error(
                "Unsuccessful %s response returned from the presenter API.", response.status_code
            )
            raise PresenterError("Unable to map content IDs", response.status_code)

        return response.json().get("mappings", [])
