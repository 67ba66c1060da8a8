"""
Run Request Model
=================
Pydantic model for a single containerized build step.

Fields:
    image              — image to pull and run
    command            — command override (image default when None)
    working_dir        — working directory inside the container
    env                — ordered KEY=value assignments
    volumes_from       — containers whose volumes are attached
    binds              — host:container bind specifications
    workspace_root     — workspace to mount; a path inside the shared workspace
                         volume, or a local path when no shared container exists
    stdout_log_method  — build output writer for container stdout
    stderr_log_method  — build output writer for container stderr

The model is frozen. Workspace resolution produces a separate ContainerConfig
instead of editing the request.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class LogMethod(str, Enum):
    """Build output writers a container stream can be routed to."""
    INFO = "info"
    RAW_INFO = "rawinfo"
    ERROR = "error"
    RAW_ERROR = "rawerror"
    DEBUG = "debug"
    RAW_DEBUG = "rawdebug"


class RunRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    image: str
    command: Optional[tuple[str, ...]] = None
    working_dir: Optional[str] = None
    env: tuple[str, ...] = ()
    volumes_from: tuple[str, ...] = ()
    binds: tuple[str, ...] = ()
    workspace_root: Optional[str] = None
    stdout_log_method: LogMethod = LogMethod.RAW_INFO
    stderr_log_method: LogMethod = LogMethod.RAW_ERROR

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("image must not be empty")
        return v.strip()
