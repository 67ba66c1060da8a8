"""
Build Job Model
Pydantic model describing the CI job a build phase runs for.
"""
from typing import Optional

from pydantic import BaseModel


class BuildJob(BaseModel):
    data_dir: str
    trigger_type: str = "commit"
    trigger_url: Optional[str] = None
    github_token: Optional[str] = None
    verbose: bool = False

    @property
    def is_pull_request(self) -> bool:
        return self.trigger_type == "pull-request"

    @property
    def pull_request_url(self) -> Optional[str]:
        return self.trigger_url if self.is_pull_request else None
