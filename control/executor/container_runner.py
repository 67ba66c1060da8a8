"""
Container Runner
================
Runs one containerized build step to completion and reports its exit status,
forwarding the container's output to the build log as it is produced.

LIFECYCLE (one container per run, never reused):
    1. Pull    — refresh the image. Failure is logged and NOT fatal: a cached
                 local image may still satisfy the request.
    2. Create  — fatal on failure; nothing else is attempted.
    3. Start   — fatal on failure; nothing else is attempted.
    4. Attach  — demultiplexed stdout/stderr are streamed by a background
                 thread while the pipeline moves on.
    5. Wait    — a wait error is logged and leaves the exit status unknown
                 (None) so that removal still happens.
    6. Remove  — always attempted once the container ran; its failure is
                 returned to the caller.

ERRORS:
    Engine failures are returned in RunResult.error, never raised.
    No stage is retried. There are no timeouts at this layer: a hung engine
    call hangs the run.

OUTPUT:
    Each chunk is decoded as UTF-8 and written verbatim (no added newlines)
    to the writer selected by the request's stdout/stderr LogMethod.
    Pipeline diagnostics go to the debug tier of the build log.
"""
import codecs
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from docker.errors import DockerException
from requests.exceptions import RequestException

from control.core.config import LOG_DRAIN_TIMEOUT
from control.executor.workspace import resolve_container_config
from control.models.run_request import RunRequest

logger = logging.getLogger(__name__)

# The docker SDK raises its own errors for API failures and lets transport
# errors (connection refused, read timeouts) through from requests.
_ENGINE_ERRORS = (DockerException, RequestException)


# ---------------------------------------------------------------------------
# Run Result (returned to the build phase)
# ---------------------------------------------------------------------------
@dataclass
class RunResult:
    """
    Outcome of a single container run.

    Fields
    ------
    exit_status : int | None
        Exit code of the completed container. None when the container never
        ran or when waiting for it failed.
    error : Exception | None
        Engine error that failed the run (create, start or remove).
    container_id : str | None
        Id of the container, once created.
    """
    exit_status: Optional[int] = None
    error: Optional[Exception] = None
    container_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ContainerRunner:
    """
    Orchestrates pull → create → start → attach → wait → remove for one
    container per call, on top of a shared docker client.
    """

    def __init__(
        self,
        client,
        toolbelt,
        workspace_container: Optional[str] = None,
        drain_timeout: float = LOG_DRAIN_TIMEOUT,
    ) -> None:
        self.client = client
        self.toolbelt = toolbelt
        self.workspace_container = workspace_container
        self.drain_timeout = drain_timeout

    def run(self, request: RunRequest) -> RunResult:
        config = resolve_container_config(request, self.workspace_container)
        stdout_writer = self.toolbelt.writer(request.stdout_log_method)
        stderr_writer = self.toolbelt.writer(request.stderr_log_method)

        self._pull(config.image)

        self.toolbelt.debug("Creating container %s.", config.image)
        try:
            container = self.client.containers.create(**config.create_kwargs())
        except _ENGINE_ERRORS as e:
            logger.debug("Container creation failed for %s: %s", config.image, e)
            return RunResult(error=e)
        self.toolbelt.debug("Container %s created with id %s.", config.image, container.id)

        result = RunResult(container_id=container.id)

        self.toolbelt.debug("Starting container %s.", container.id)
        try:
            container.start()
        except _ENGINE_ERRORS as e:
            logger.debug("Container %s failed to start: %s", container.id, e)
            result.error = e
            return result

        streamer = self._attach(container, stdout_writer, stderr_writer)
        result.exit_status = self._wait(container)

        if streamer is not None:
            streamer.join(self.drain_timeout)
            if streamer.is_alive():
                logger.warning("Output of container %s still streaming after %.1fs",
                               container.id, self.drain_timeout)

        self.toolbelt.debug("Removing completed container %s.", container.id)
        try:
            container.remove(force=True)
        except _ENGINE_ERRORS as e:
            self.toolbelt.error("Unable to remove container %s: %s", container.id, e)
            result.error = e
            return result

        self.toolbelt.debug("Container %s completed with exit status %s.",
                            container.id, result.exit_status)
        return result

    # -------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------
    def _pull(self, image: str) -> None:
        self.toolbelt.debug("Pulling latest image for container %s.", image)
        try:
            progress = self.client.api.pull(image, stream=True, decode=True)
            try:
                for event in progress:
                    # Progress events are noisy; only errors matter.
                    if isinstance(event, dict) and event.get("error"):
                        self.toolbelt.error("Unable to pull image: %s", event["error"])
                        return
            finally:
                close = getattr(progress, "close", None)
                if close is not None:
                    close()
        except _ENGINE_ERRORS as e:
            self.toolbelt.error("Unable to pull image: %s.", e)
            return
        self.toolbelt.debug("Container image %s pulled.", image)

    def _attach(
        self,
        container,
        stdout_writer: Callable[[str], None],
        stderr_writer: Callable[[str], None],
    ) -> Optional[threading.Thread]:
        self.toolbelt.debug("Reporting logs from container %s.", container.id)
        try:
            stream = container.attach(
                stdout=True, stderr=True, stream=True, logs=True, demux=True,
            )
        except _ENGINE_ERRORS as e:
            self.toolbelt.error("Unable to report logs from container %s: %s", container.id, e)
            return None

        streamer = threading.Thread(
            target=self._pump,
            args=(stream, stdout_writer, stderr_writer, container.id),
            name=f"logs-{container.id[:12]}",
            daemon=True,
        )
        streamer.start()
        return streamer

    def _pump(
        self,
        stream: Iterable[tuple[Optional[bytes], Optional[bytes]]],
        stdout_writer: Callable[[str], None],
        stderr_writer: Callable[[str], None],
        container_id: str,
    ) -> None:
        """Forward demultiplexed chunks until the container closes the stream."""
        # Incremental decoders keep multi-byte characters split across chunks intact
        out_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        err_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            for out_chunk, err_chunk in stream:
                if out_chunk:
                    text = out_decoder.decode(out_chunk)
                    if text:
                        stdout_writer(text)
                if err_chunk:
                    text = err_decoder.decode(err_chunk)
                    if text:
                        stderr_writer(text)
        except _ENGINE_ERRORS as e:
            logger.warning("Log stream of container %s ended early: %s", container_id, e)

        tail = out_decoder.decode(b"", final=True)
        if tail:
            stdout_writer(tail)
        tail = err_decoder.decode(b"", final=True)
        if tail:
            stderr_writer(tail)

    def _wait(self, container) -> Optional[int]:
        self.toolbelt.debug("Waiting for container %s to complete.", container.id)
        try:
            response = container.wait()
        except _ENGINE_ERRORS as e:
            self.toolbelt.error("Unable to wait for container: %s", e)
            return None
        return response.get("StatusCode")
