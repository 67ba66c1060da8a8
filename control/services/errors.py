"""
Service Errors
Exceptions raised by the REST clients when a service answers with an unexpected status.
"""
from typing import Optional


class ServiceError(Exception):
    """Base class for REST collaborator failures."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentServiceError(ServiceError):
    pass


class PresenterError(ServiceError):
    pass


class GitHubError(ServiceError):
    not_found = False


class RepositoryNotFound(GitHubError):
    not_found = True
