"""
Workspace Mounts
================
Turns a RunRequest into the configuration actually handed to the engine.

Two mutually exclusive strategies, chosen only by whether a shared workspace
container is configured:

    Shared container:
        workspace_root is a path inside the shared data volume.
        The volume is attached with --volumes-from and CONTROL_ROOT,
        NPM_CONFIG_CACHE and TMPDIR point tooling at it.

    Local filesystem:
        workspace_root is a host path, bind-mounted read-write at
        /var/control-repo.

workspace_root itself never reaches the engine.
"""
import posixpath
from dataclasses import dataclass
from typing import Any, Optional

from control.core.constants import (
    CONTROL_REPO_PATH,
    ENV_CONTROL_ROOT,
    ENV_NPM_CACHE,
    ENV_TMPDIR,
    NPM_CACHE_DIR,
    TMP_DIR,
)
from control.models.run_request import RunRequest


@dataclass(frozen=True)
class BindMount:
    """A host path mounted into the container. The engine mode string is kept verbatim."""
    source: str
    target: str
    mode: Optional[str] = None

    @classmethod
    def parse(cls, spec: str) -> "BindMount":
        parts = spec.split(":", 2)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Invalid bind specification: {spec!r}")
        mode = parts[2] if len(parts) > 2 and parts[2] else None
        return cls(source=parts[0], target=parts[1], mode=mode)

    @property
    def read_only(self) -> bool:
        return self.mode is not None and "ro" in self.mode.split(",")

    def as_bind(self) -> str:
        bind = f"{self.source}:{self.target}"
        return f"{bind}:{self.mode}" if self.mode else bind


@dataclass(frozen=True)
class ContainerConfig:
    """
    Immutable engine-call configuration for one container.

    Fields
    ------
    image : str
        Image to create the container from.
    command : tuple[str, ...] | None
        Command override; None keeps the image default.
    working_dir : str | None
        Working directory inside the container.
    environment : tuple[str, ...]
        Ordered KEY=value assignments.
    volumes_from : tuple[str, ...]
        Containers whose volumes are attached.
    mounts : tuple[BindMount, ...]
        Host bind mounts.
    """
    image: str
    command: Optional[tuple[str, ...]] = None
    working_dir: Optional[str] = None
    environment: tuple[str, ...] = ()
    volumes_from: tuple[str, ...] = ()
    mounts: tuple[BindMount, ...] = ()

    @property
    def binds(self) -> list[str]:
        return [m.as_bind() for m in self.mounts]

    def create_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``DockerClient.containers.create``."""
        kwargs: dict[str, Any] = {
            "image": self.image,
            "environment": list(self.environment),
        }
        if self.command is not None:
            kwargs["command"] = list(self.command)
        if self.working_dir:
            kwargs["working_dir"] = self.working_dir
        if self.volumes_from:
            kwargs["volumes_from"] = list(self.volumes_from)
        if self.mounts:
            kwargs["volumes"] = self.binds
        return kwargs


def workspace_environment(workspace_root: str) -> tuple[str, ...]:
    """Environment pointing tooling at a workspace inside the shared volume."""
    return (
        f"{ENV_CONTROL_ROOT}={workspace_root}",
        f"{ENV_NPM_CACHE}={posixpath.join(workspace_root, NPM_CACHE_DIR)}",
        f"{ENV_TMPDIR}={posixpath.join(workspace_root, TMP_DIR)}",
    )


def resolve_container_config(
    request: RunRequest,
    workspace_container: Optional[str] = None,
) -> ContainerConfig:
    """
    Build the engine configuration for a request.

    Parameters
    ----------
    request : RunRequest
        The step to run. Left untouched.
    workspace_container : str | None
        Shared workspace container id. Selects the --volumes-from strategy
        when set, the local bind mount strategy otherwise.

    The local workspace bind is appended after the request's own binds;
    caller binds are kept, with their modes, rather than replaced.

    Returns
    -------
    ContainerConfig
    """
    environment = tuple(request.env)
    volumes_from = tuple(request.volumes_from)
    mounts = tuple(BindMount.parse(b) for b in request.binds)

    if request.workspace_root:
        if workspace_container:
            volumes_from += (workspace_container,)
            environment += workspace_environment(request.workspace_root)
        else:
            mounts += (BindMount(source=request.workspace_root, target=CONTROL_REPO_PATH),)

    return ContainerConfig(
        image=request.image,
        command=request.command,
        working_dir=request.working_dir,
        environment=environment,
        volumes_from=volumes_from,
        mounts=mounts,
    )
