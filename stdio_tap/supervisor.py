"""Process supervisor — launches the child, runs the forwarders, propagates the exit code."""

import io
import logging
import signal
import subprocess
import sys
import threading
from enum import Enum

from stdio_tap.command import build_command
from stdio_tap.config import Config
from stdio_tap.forwarder import RawInput, forward_output, forward_stdin
from stdio_tap.models import Direction, control_record
from stdio_tap.sink import LogSink, new_log_path

logger = logging.getLogger(__name__)


class UsageError(Exception):
    """No command was supplied."""


class LaunchError(Exception):
    """The child process could not be started."""


class State(Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATING = "terminating"
    DONE = "done"


class ProcessSupervisor:
    """Runs one wrapped command from launch to exit-code propagation.

    The standard streams default to the wrapper's own binary streams; tests
    substitute in-memory ones. ``command_builder`` maps (argv, use_shell) to the
    Popen argument list and ``sink_factory`` opens the log sink for a path.
    """

    def __init__(self, config: Config, command_builder=build_command,
                 stdin=None, stdout=None, stderr=None,
                 sink_factory=None, handle_signals: bool = False):
        self._config = config
        self._command_builder = command_builder
        self._stdin = stdin if stdin is not None else _default_stdin()
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stderr = stderr if stderr is not None else sys.stderr.buffer
        self._sink_factory = sink_factory or (
            lambda path: LogSink(path, fsync=config.fsync)
        )
        self._handle_signals = handle_signals
        self._stop_stdin = threading.Event()
        self._previous_handlers = {}
        self._received_signals = []
        self.state = State.IDLE
        self.log_path = None
        self.sink = None
        self.process = None

    def run(self, argv: list[str]) -> int:
        """Run argv as a wrapped child and return the wrapper's exit code."""
        if not argv:
            raise UsageError("no command supplied")

        self.state = State.LAUNCHING
        self.log_path = new_log_path(self._config.log_dir, self._config.log_prefix)
        self.sink = self._sink_factory(self.log_path)
        logger.info("Logging session to %s", self.log_path)

        try:
            try:
                self._launch(argv)
            except LaunchError as e:
                logger.error("%s", e)
                self.sink.append(control_record(f"!!! launch error: {e}"))
                return self._config.failure_exit_code

            self._install_signal_handlers()
            try:
                self.state = State.RUNNING
                self._run_forwarders()
                self._record_signals()
                self.state = State.TERMINATING
                return self._collect_exit_code()
            finally:
                self._restore_signal_handlers()
                self._record_signals()
        finally:
            self._kill_child()
            self.sink.close()
            self.state = State.DONE

    def _launch(self, argv: list[str]):
        cmd = self._command_builder(argv, self._config.use_shell)
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise LaunchError(f"cannot start {' '.join(cmd)}: {e}") from e
        self.sink.append(control_record(
            f"started pid {self.process.pid}: {' '.join(cmd)}"
        ))

    def _run_forwarders(self):
        proc = self.process
        stdin_thread = threading.Thread(
            target=forward_stdin,
            args=(self._stdin, proc.stdin, self.sink, self._config.chunk_size,
                  self._stop_stdin),
            name="stdin-forwarder",
            daemon=True,
        )
        output_threads = [
            threading.Thread(
                target=forward_output,
                args=(pipe, stream, self.sink, direction, self._config.max_line_bytes),
                name=f"{direction.name.lower()}-forwarder",
                daemon=True,
            )
            for pipe, stream, direction in (
                (proc.stdout, self._stdout, Direction.OUTPUT),
                (proc.stderr, self._stderr, Direction.ERROR),
            )
        ]
        for t in (stdin_thread, *output_threads):
            t.start()

        for t in output_threads:
            t.join()

        self.state = State.DRAINING
        # Both output pipes are at EOF; once the child is gone the stdin
        # forwarder has no reader left and may be parked on a terminal read.
        if stdin_thread.is_alive():
            try:
                proc.wait()
            except OSError:
                pass
            self._stop_stdin.set()
            stdin_thread.join(self._config.stdin_grace_seconds)
            if stdin_thread.is_alive():
                logger.info("stdin forwarder still blocked on read, abandoning it")
                self.sink.append(control_record("stdin forwarder abandoned after child exit"))

    def _collect_exit_code(self) -> int:
        try:
            returncode = self.process.wait()
        except OSError as e:
            logger.error("Command finished with error: %s", e)
            self.sink.append(control_record(f"!!! command error: {e}"))
            return self._config.failure_exit_code

        if returncode < 0:
            logger.error("Command terminated by signal %d", -returncode)
            self.sink.append(control_record(
                f"!!! command terminated by signal {-returncode}"
            ))
            return self._config.failure_exit_code

        self.sink.append(control_record(f"exited with code {returncode}"))
        return returncode

    def _kill_child(self):
        if self.process is None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning("Error killing process: %s", e)

    def _on_signal(self, sig, _frame):
        # Runs between bytecodes of the main thread, possibly inside a sink
        # write, so it only takes note and forwards. Records are written later.
        error = None
        if sig == signal.SIGTERM and self.process is not None \
                and self.process.poll() is None:
            try:
                self.process.send_signal(sig)
            except OSError as e:
                error = e
        self._received_signals.append((sig, error))

    def _record_signals(self):
        while self._received_signals:
            sig, error = self._received_signals.pop(0)
            name = signal.Signals(sig).name
            logger.info("Wrapper received %s", name)
            if error is not None:
                logger.warning("Error forwarding %s: %s", name, error)
            self.sink.append(control_record(f"wrapper received {name}"))

    def _install_signal_handlers(self):
        if not self._handle_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)

    def _restore_signal_handlers(self):
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()


def _default_stdin():
    """The wrapper's stdin as a raw descriptor reader, or an empty stream."""
    if sys.stdin is None:
        return io.BytesIO()
    try:
        return RawInput(sys.stdin.fileno())
    except (AttributeError, OSError, ValueError):
        return sys.stdin.buffer
