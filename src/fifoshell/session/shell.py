"""Shell session: a persistent shell process driven through its stdin.

Commands are written to the shell's stdin one line at a time.  Each line
redirects the command's stdout/stderr into FIFOs and then echoes ``$?``
into a third FIFO, so the three streams of every command come back
separately even though they all come from the same process.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import signal
import subprocess
import threading
from collections.abc import Mapping, Sequence

from fifoshell.config import ShellConfig, parse_env
from fifoshell.errors import (
    AbnormalExit,
    CommandTimeout,
    ProtocolError,
    ShellError,
    ShellStopped,
    TransportError,
)
from fifoshell.transport import (
    BinarySink,
    Channel,
    ConduitSet,
    DrainGroup,
    OutputBuffer,
    start_drain,
    unblock,
)

logger = logging.getLogger(__name__)

_EXIT_CODE_RE = re.compile(r"[+-]?[0-9]+")

# Attempts at releasing drains blocked on a FIFO open after a kill.
_RELEASE_ROUNDS = 50


class Shell:
    """A persistent shell process that runs one command at a time.

    State left by a command (working directory, variables) is seen by the
    next one, like typing into a terminal.  Output of each command goes to
    the ``stdout`` / ``stderr`` sinks given here; a sink of None means that
    stream is not captured.  The shell's own stdout and stderr are never
    connected to this process.

    The process is spawned on the first ``exec()``.  Once ``stop()`` has
    been called the session cannot be used again.

    Usage:
        out = OutputBuffer()
        with Shell("/bin/bash", cwd="/", stdout=out) as sh:
            sh.exec("cd tmp")
            sh.exec("pwd")
        out.text()  # "/tmp\\n"
    """

    def __init__(
        self,
        shell: str = "/bin/bash",
        env: Mapping[str, str] | Sequence[str] | None = None,
        cwd: str | None = None,
        stdout: BinarySink | None = None,
        stderr: BinarySink | None = None,
        timeout: float | None = None,
    ) -> None:
        self.shell = shell
        self.env = _normalize_env(env)
        self.cwd = cwd if cwd is not None else os.getcwd()
        self.timeout = timeout

        self._sinks: dict[Channel, BinarySink] = {}
        if stdout is not None:
            self._sinks[Channel.STDOUT] = stdout
        if stderr is not None:
            self._sinks[Channel.STDERR] = stderr

        self._conduits = ConduitSet(
            Channel.for_sinks(stdout is not None, stderr is not None)
        )

        redirects = []
        if Channel.STDOUT in self._conduits:
            redirects.append(f"1>{shlex.quote(self._conduits.path(Channel.STDOUT))}")
        if Channel.STDERR in self._conduits:
            redirects.append(f"2>{shlex.quote(self._conduits.path(Channel.STDERR))}")
        self._redirect = " ".join(redirects)
        self._status = f"echo $? 1>{shlex.quote(self._conduits.path(Channel.EXIT_CODE))}"

        self._group = DrainGroup()
        self._proc: subprocess.Popen[bytes] | None = None
        self._killed = False

    @classmethod
    def from_config(
        cls,
        config: ShellConfig,
        stdout: BinarySink | None = None,
        stderr: BinarySink | None = None,
    ) -> Shell:
        """Build a session from a ShellConfig.

        Sinks are dropped for streams the config does not capture.
        """
        return cls(
            shell=config.shell,
            env=config.env,
            cwd=config.cwd,
            stdout=stdout if config.capture_stdout else None,
            stderr=stderr if config.capture_stderr else None,
            timeout=config.timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def exec(self, command: str, timeout: float | None = None) -> int:
        """Run ``command`` in the shell and return its exit status.

        Blocks until the command's stdout, stderr and exit status have all
        been drained.  ``timeout`` (or the session default) bounds the wait;
        when it elapses the shell is killed and CommandTimeout is raised.

        Raises:
            ShellStopped: the session was stopped or killed.
            ValueError: ``command`` spans more than one line.
            TransportError: the shell could not be started, fed or drained.
            ProtocolError: the shell reported a non-numeric status.
            CommandTimeout: the timeout elapsed.
        """
        if self._killed or not self._conduits.exists:
            raise ShellStopped()

        if "\n" in command:
            raise ValueError("command must be a single line")

        if self._proc is None:
            self._start()
        assert self._proc is not None and self._proc.stdin is not None

        line = self.frame(command)
        exit_code_buf = OutputBuffer()

        self._group.add(len(self._conduits))
        threads: dict[Channel, threading.Thread] = {}
        for channel in self._conduits.channels:
            sink = exit_code_buf if channel is Channel.EXIT_CODE else self._sinks[channel]
            threads[channel] = start_drain(
                channel, self._conduits.path(channel), sink, self._group
            )

        logger.debug("Sending to shell pid=%d: %s", self._proc.pid, line.rstrip("\n"))
        try:
            self._proc.stdin.write(line.encode("utf-8"))
            self._proc.stdin.flush()
        except OSError as e:
            logger.error("Cannot write to shell pid=%d: %s", self._proc.pid, e)
            self._release_drains(threads)
            raise TransportError(f"cannot write to shell: {e}") from e

        if timeout is None:
            timeout = self.timeout
        if not self._group.wait(timeout):
            assert timeout is not None
            logger.warning("Command timed out after %ss, killing shell: %s", timeout, command)
            self.kill()
            self._release_drains(threads)
            raise CommandTimeout(command, timeout)

        errors = self._group.pop_errors()
        if errors:
            channel, error = errors[0]
            raise TransportError(f"drain of {channel.value} failed: {error}") from error

        exit_code = parse_exit_code(exit_code_buf.text())
        logger.debug("Command exited with %d: %s", exit_code, command)
        return exit_code

    def frame(self, command: str) -> str:
        """The line written to the shell's stdin for ``command``.

        The status echo is chained with ``;`` on the same line so ``$?`` is
        the status of ``command`` itself.
        """
        head = f"{command} {self._redirect}" if self._redirect else command
        return f"{head} ; {self._status}\n"

    def stop(self) -> None:
        """Stop the shell and release the FIFO directory.

        Raises:
            ShellStopped: stop() was already called.
            AbnormalExit: the shell exited with a non-zero status.
        """
        if not self._conduits.exists:
            raise ShellStopped()

        self._conduits.remove()

        if self._proc is None:
            logger.debug("Shell stopped before it was started")
            return

        self._close_stdin()
        if self._killed:
            return

        returncode = self._proc.wait()
        logger.info("Shell pid=%d stopped (code=%d)", self._proc.pid, returncode)
        if returncode != 0:
            raise AbnormalExit(returncode)

    def kill(self) -> None:
        """Kill the shell's whole process group.

        No-op if the shell was never started or is already killed.  The
        session stays unusable afterwards; ``stop()`` still removes the
        FIFO directory.
        """
        if self._proc is None or self._killed:
            return

        self._killed = True
        try:
            os.killpg(self._proc.pid, signal.SIGKILL)
            logger.warning("Killed shell pid=%d", self._proc.pid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._proc.pid)

        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning("Shell pid=%d not reaped after SIGKILL", self._proc.pid)

        self._close_stdin()

    @property
    def alive(self) -> bool:
        return not self._killed and self._conduits.exists

    @property
    def stopped(self) -> bool:
        """True once stop() has removed the FIFO directory."""
        return not self._conduits.exists

    @property
    def started(self) -> bool:
        return self._proc is not None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._conduits.channels

    @property
    def directory(self) -> str:
        """The private directory holding this session's FIFOs."""
        return self._conduits.directory

    def __enter__(self) -> Shell:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, *exc_info: object) -> None:
        if self.stopped:
            return
        if exc_type is None:
            self.stop()
            return
        try:
            self.stop()
        except ShellError as e:
            logger.warning("Error stopping shell after failure: %s", e)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                [self.shell],
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=self.env,
                cwd=self.cwd,
                start_new_session=True,  # Own process group, for kill()
            )
        except OSError as e:
            raise TransportError(f"cannot start {self.shell}: {e}") from e

        logger.info(
            "Shell started: pid=%d cmd=%s cwd=%s", self._proc.pid, self.shell, self.cwd
        )

    def _close_stdin(self) -> None:
        assert self._proc is not None
        if self._proc.stdin is None:
            return
        try:
            self._proc.stdin.close()
        except BrokenPipeError:
            # Unflushed input and the shell is gone; the pipe is closed anyway.
            logger.debug("Shell pid=%d stdin already broken", self._proc.pid)

    def _release_drains(self, threads: dict[Channel, threading.Thread]) -> None:
        """Unblock and join drains left waiting on a FIFO that will not be written."""
        for _ in range(_RELEASE_ROUNDS):
            blocked = [ch for ch, t in threads.items() if t.is_alive()]
            if not blocked:
                break
            for channel in blocked:
                unblock(self._conduits.path(channel))
            for channel in blocked:
                threads[channel].join(0.1)
        else:
            logger.warning(
                "Drains still blocked: %s",
                ", ".join(ch.value for ch, t in threads.items() if t.is_alive()),
            )
        self._group.pop_errors()


def parse_exit_code(captured: str) -> int:
    """Parse what the shell echoed into the exit code FIFO."""
    raw = captured.strip()
    if not _EXIT_CODE_RE.fullmatch(raw):
        raise ProtocolError(raw)
    return int(raw, 10)


def _normalize_env(
    env: Mapping[str, str] | Sequence[str] | None,
) -> dict[str, str] | None:
    if env is None:
        return None
    if isinstance(env, Mapping):
        return {str(k): str(v) for k, v in env.items()}
    if isinstance(env, str):
        raise TypeError("env must be a mapping or a list of KEY=VALUE strings")
    return parse_env(list(env))
