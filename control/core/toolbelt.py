"""
Toolbelt
========
Interactions with the current job and its build output.

Build output vs. process logging:
    - Toolbelt writers append to the build log the CI user sees.
    - Module loggers (logging.getLogger) are for operators of the plugin.

Writers:
    info / error       — always shown, newline appended when missing
    rawinfo / rawerror — always shown, text written verbatim
    debug / rawdebug   — shown only when the job is verbose or CONTROL_VERBOSE is set

Writes are serialized with a lock: container output arrives from a
background thread while the pipeline itself keeps reporting progress.
"""
import os
import sys
import logging
import threading
from typing import Callable, Optional

import docker

from control.core.config import WORKSPACE_CONTAINER, LOG_DRAIN_TIMEOUT, VERBOSE
from control.executor.container_runner import ContainerRunner
from control.models.build_job import BuildJob
from control.models.run_request import LogMethod

logger = logging.getLogger(__name__)


class Toolbelt:
    """
    Build-phase helper handed to every collaborator that reports to the build log.
    """

    def __init__(
        self,
        job: BuildJob,
        out: Optional[Callable[[str], object]] = None,
        workspace_container: Optional[str] = WORKSPACE_CONTAINER,
    ) -> None:
        self.job = job
        self.out = out or sys.stdout.write
        self._workspace_container = workspace_container or None
        self._lock = threading.Lock()
        self.docker: Optional[ContainerRunner] = None

    # -------------------------------------------------------------------
    # Workspace
    # -------------------------------------------------------------------
    def workspace_path(self, subpath: str = "") -> str:
        """Access a path within the current build's workspace directory."""
        return os.path.join(self.job.data_dir, subpath)

    def workspace_container(self) -> Optional[str]:
        """Shared workspace container id, or None when workspaces are bind-mounted."""
        return self._workspace_container

    def connect_to_docker(self) -> ContainerRunner:
        if self.docker is None:
            self.docker = ContainerRunner(
                docker.from_env(),
                self,
                workspace_container=self.workspace_container(),
                drain_timeout=LOG_DRAIN_TIMEOUT,
            )
            logger.debug("Connected to Docker engine")
        return self.docker

    # -------------------------------------------------------------------
    # Build output
    # -------------------------------------------------------------------
    def _write(self, force_newline: bool, message: str, args: tuple) -> None:
        text = message % args if args else message
        if force_newline and not text.endswith("\n"):
            text += "\n"
        with self._lock:
            self.out(text)

    def info(self, message: str, *args) -> None:
        """Informational message that always appears in the build output. Use sparingly."""
        self._write(True, message, args)

    def rawinfo(self, message: str, *args) -> None:
        self._write(False, message, args)

    def error(self, message: str, *args) -> None:
        """Report a build error to the build output."""
        self._write(True, message, args)

    def rawerror(self, message: str, *args) -> None:
        self._write(False, message, args)

    @property
    def verbose(self) -> bool:
        """The job asked for detail, or CONTROL_VERBOSE is set for the whole process."""
        return self.job.verbose or VERBOSE

    def debug(self, message: str, *args) -> None:
        """Detailed progress message. Only appears when verbose."""
        if self.verbose:
            self._write(True, message, args)

    def rawdebug(self, message: str, *args) -> None:
        if self.verbose:
            self._write(False, message, args)

    def writer(self, method: LogMethod) -> Callable[..., None]:
        """Return the bound writer for a LogMethod."""
        return {
            LogMethod.INFO: self.info,
            LogMethod.RAW_INFO: self.rawinfo,
            LogMethod.ERROR: self.error,
            LogMethod.RAW_ERROR: self.rawerror,
            LogMethod.DEBUG: self.debug,
            LogMethod.RAW_DEBUG: self.rawdebug,
        }[method]
