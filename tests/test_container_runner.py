"""
Unit Tests — Container Runner
=============================
Pipeline ordering, error handling and output routing of ContainerRunner,
all with a mocked docker client.

No real Docker daemon is required to run these tests.
"""
import threading
import pytest
from unittest.mock import MagicMock, patch
from docker.errors import APIError, ImageNotFound
from requests.exceptions import ReadTimeout

from control.core.toolbelt import Toolbelt
from control.executor.container_runner import ContainerRunner, RunResult
from control.models.build_job import BuildJob
from control.models.run_request import LogMethod, RunRequest


def _client(container=None, pull_events=None):
    client = MagicMock()
    client.api.pull.return_value = iter(pull_events if pull_events is not None else [
        {"status": "Pulling from library/builder"},
        {"status": "Download complete"},
    ])
    client.containers.create.return_value = container
    return client


def _container(chunks=None, status=0):
    container = MagicMock()
    container.id = "c0ffee1234567890"
    container.attach.return_value = iter(chunks or [])
    container.wait.return_value = {"StatusCode": status}
    return container


@pytest.fixture(autouse=True)
def quiet_process():
    with patch("control.core.toolbelt.VERBOSE", False):
        yield


@pytest.fixture
def output():
    return []


@pytest.fixture
def toolbelt(output):
    return Toolbelt(BuildJob(data_dir="/data"), out=output.append, workspace_container=None)


@pytest.fixture
def request_():
    return RunRequest(image="builder:latest", workspace_root="/data/job42")


# ---------------------------------------------------------------------------
# 1. Successful run
# ---------------------------------------------------------------------------
class TestSuccessfulRun:

    def test_exit_status_and_output(self, toolbelt, output, request_):
        container = _container(chunks=[(b"building\n", None)], status=0)
        client = _client(container)

        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert result == RunResult(exit_status=0, container_id="c0ffee1234567890")
        assert result.ok
        assert output == ["building\n"]
        container.remove.assert_called_once_with(force=True)

    def test_stage_order(self, toolbelt, request_):
        container = _container()
        client = _client(container)
        calls = []
        client.api.pull.side_effect = lambda *a, **k: calls.append("pull") or iter([])
        client.containers.create.side_effect = lambda **k: calls.append("create") or container
        container.start.side_effect = lambda: calls.append("start")
        container.attach.side_effect = lambda **k: calls.append("attach") or iter([])
        container.wait.side_effect = lambda: calls.append("wait") or {"StatusCode": 3}
        container.remove.side_effect = lambda **k: calls.append("remove")

        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert calls == ["pull", "create", "start", "attach", "wait", "remove"]
        assert result.exit_status == 3

    def test_nonzero_exit_is_not_an_error(self, toolbelt, request_):
        client = _client(_container(status=2))
        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)
        assert result.exit_status == 2
        assert result.error is None

    def test_logs_are_followed_and_demultiplexed(self, toolbelt, request_):
        container = _container()
        ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)
        container.attach.assert_called_once_with(
            stdout=True, stderr=True, stream=True, logs=True, demux=True,
        )

    def test_pull_streams_progress(self, toolbelt, request_):
        client = _client(_container())
        ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)
        client.api.pull.assert_called_once_with("builder:latest", stream=True, decode=True)

    def test_debug_messages_only_when_verbose(self, output, request_):
        quiet = Toolbelt(BuildJob(data_dir="/data"), out=output.append)
        ContainerRunner(_client(_container()), quiet, drain_timeout=5).run(request_)
        assert output == []

        verbose = Toolbelt(BuildJob(data_dir="/data", verbose=True), out=output.append)
        ContainerRunner(_client(_container()), verbose, drain_timeout=5).run(request_)
        assert any("Pulling latest image for container builder:latest." in line for line in output)
        assert any("completed with exit status 0" in line for line in output)


# ---------------------------------------------------------------------------
# 2. Workspace handling on the engine call
# ---------------------------------------------------------------------------
class TestWorkspaceOnEngineCall:

    def test_local_bind_mount(self, toolbelt):
        client = _client(_container())
        request = RunRequest(image="builder:latest", workspace_root="/home/user/proj")

        ContainerRunner(client, toolbelt, drain_timeout=5).run(request)

        kwargs = client.containers.create.call_args.kwargs
        assert kwargs["volumes"] == ["/home/user/proj:/var/control-repo"]
        assert "volumes_from" not in kwargs
        assert "workspace_root" not in kwargs

    def test_shared_workspace_container(self, toolbelt):
        client = _client(_container())
        request = RunRequest(image="builder:latest", workspace_root="/workspace/job42")

        runner = ContainerRunner(client, toolbelt, workspace_container="workspace-data", drain_timeout=5)
        runner.run(request)

        kwargs = client.containers.create.call_args.kwargs
        assert kwargs["volumes_from"] == ["workspace-data"]
        assert "volumes" not in kwargs
        assert "CONTROL_ROOT=/workspace/job42" in kwargs["environment"]
        assert "workspace_root" not in kwargs

    def test_request_left_untouched(self, toolbelt, request_):
        before = request_.model_dump()
        ContainerRunner(_client(_container()), toolbelt, drain_timeout=5).run(request_)
        assert request_.model_dump() == before


# ---------------------------------------------------------------------------
# 3. Failures
# ---------------------------------------------------------------------------
class TestFailures:

    def test_pull_failure_is_not_fatal(self, toolbelt, output, request_):
        container = _container()
        client = _client(container)
        client.api.pull.side_effect = APIError("registry unreachable")

        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert result.ok
        assert client.containers.create.call_args.kwargs["image"] == "builder:latest"
        assert any(line.startswith("Unable to pull image") for line in output)
        container.remove.assert_called_once()

    def test_pull_error_event_is_not_fatal(self, toolbelt, output, request_):
        client = _client(_container(), pull_events=[{"error": "manifest unknown"}])

        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert result.exit_status == 0
        assert "Unable to pull image: manifest unknown\n" in output
        client.containers.create.assert_called_once()

    def test_pull_stream_closed_after_error_event(self, toolbelt, request_):
        closed = []

        def progress():
            try:
                yield {"error": "manifest unknown"}
                yield {"status": "never read"}
            finally:
                closed.append(True)

        client = _client(_container())
        # The mock keeps a reference, so only an explicit close() runs the finally block
        client.api.pull.return_value = progress()

        ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert closed == [True]

    def test_create_failure_aborts(self, toolbelt, request_):
        client = _client()
        err = ImageNotFound("no such image")
        client.containers.create.side_effect = err

        result = ContainerRunner(client, toolbelt, drain_timeout=5).run(request_)

        assert result.error is err
        assert result.exit_status is None
        assert result.container_id is None
        assert not result.ok

    def test_start_failure_aborts(self, toolbelt, request_):
        container = _container()
        err = APIError("cannot start container")
        container.start.side_effect = err

        result = ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert result.error is err
        container.attach.assert_not_called()
        container.wait.assert_not_called()
        container.remove.assert_not_called()

    def test_wait_failure_still_removes(self, toolbelt, output, request_):
        container = _container()
        container.wait.side_effect = ReadTimeout("engine timed out")

        result = ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert result.exit_status is None
        assert result.error is None
        container.remove.assert_called_once_with(force=True)
        assert any("Unable to wait for container" in line for line in output)

    def test_remove_failure_is_returned(self, toolbelt, request_):
        container = _container(status=0)
        err = APIError("removal in progress")
        container.remove.side_effect = err

        result = ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert result.error is err
        assert result.exit_status == 0

    def test_attach_failure_still_waits_and_removes(self, toolbelt, request_):
        container = _container(status=1)
        container.attach.side_effect = APIError("attach refused")

        result = ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert result.exit_status == 1
        container.wait.assert_called_once()
        container.remove.assert_called_once()


# ---------------------------------------------------------------------------
# 4. Output routing
# ---------------------------------------------------------------------------
class TestOutputRouting:

    def _routing_toolbelt(self):
        stdout_lines, stderr_lines = [], []
        toolbelt = MagicMock()
        toolbelt.writer.side_effect = lambda method: {
            LogMethod.RAW_INFO: stdout_lines.append,
            LogMethod.RAW_ERROR: stderr_lines.append,
        }[method]
        return toolbelt, stdout_lines, stderr_lines

    def test_stdout_and_stderr_never_cross(self, request_):
        toolbelt, stdout_lines, stderr_lines = self._routing_toolbelt()
        container = _container(chunks=[
            (b"step 1\n", None),
            (None, b"warning: deprecated\n"),
            (b"step 2\n", b"fatal: nope\n"),
        ])

        ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert stdout_lines == ["step 1\n", "step 2\n"]
        assert stderr_lines == ["warning: deprecated\n", "fatal: nope\n"]

    def test_output_streams_while_waiting(self, request_):
        toolbelt, stdout_lines, _ = self._routing_toolbelt()
        waiting = threading.Event()
        events = []

        def live_output():
            yield (b"starting\n", None)
            # Only continues once the pipeline has moved on to wait()
            if not waiting.wait(5):
                return
            events.append("chunk after wait")
            yield (b"still building\n", None)

        def wait():
            events.append("wait")
            waiting.set()
            return {"StatusCode": 0}

        container = _container()
        container.attach.return_value = live_output()
        container.wait.side_effect = wait

        result = ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert result.exit_status == 0
        assert events == ["wait", "chunk after wait"]
        assert stdout_lines == ["starting\n", "still building\n"]
        container.remove.assert_called_once_with(force=True)

    def test_custom_log_methods(self, output):
        toolbelt = Toolbelt(BuildJob(data_dir="/data"), out=output.append)
        request = RunRequest(
            image="builder:latest",
            stdout_log_method=LogMethod.INFO,
            stderr_log_method=LogMethod.RAW_DEBUG,
        )
        container = _container(chunks=[(b"no newline", b"hidden unless verbose")])

        ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request)

        assert output == ["no newline\n"]

    def test_multibyte_character_split_across_chunks(self, request_):
        toolbelt, stdout_lines, _ = self._routing_toolbelt()
        encoded = "café\n".encode("utf-8")
        container = _container(chunks=[(encoded[:4], None), (encoded[4:], None)])

        ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)

        assert "".join(stdout_lines) == "café\n"

    def test_percent_signs_written_verbatim(self, output, toolbelt, request_):
        container = _container(chunks=[(b"100% done\n", None)])
        ContainerRunner(_client(container), toolbelt, drain_timeout=5).run(request_)
        assert output == ["100% done\n"]
