"""Tests for fifoshell.transport (Channel, ConduitSet, DrainGroup, drains)."""

from __future__ import annotations

import enum
import os
import stat
import time

import pytest

from fifoshell.errors import TransportError
from fifoshell.transport import (
    Channel,
    ConduitSet,
    DrainGroup,
    OutputBuffer,
    start_drain,
    unblock,
)

pytestmark = pytest.mark.skipif(
    not hasattr(os, "mkfifo"), reason="named pipes are not available"
)


def _unblock_when_ready(path: str, deadline: float = 5.0) -> None:
    """Retry unblock() until the drain is waiting on the FIFO."""
    end = time.monotonic() + deadline
    while time.monotonic() < end:
        if unblock(path):
            return
        time.sleep(0.01)
    raise AssertionError(f"no reader appeared on {path}")


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class TestChannel:
    def test_is_str_enum(self) -> None:
        assert issubclass(Channel, enum.StrEnum)

    def test_values_are_fifo_names(self) -> None:
        assert Channel.STDOUT == "stdout"
        assert Channel.STDERR == "stderr"
        assert Channel.EXIT_CODE == "exit_code"

    def test_for_sinks_exit_code_only(self) -> None:
        assert Channel.for_sinks(False, False) == (Channel.EXIT_CODE,)

    def test_for_sinks_stdout(self) -> None:
        assert Channel.for_sinks(True, False) == (Channel.STDOUT, Channel.EXIT_CODE)

    def test_for_sinks_stderr(self) -> None:
        assert Channel.for_sinks(False, True) == (Channel.STDERR, Channel.EXIT_CODE)

    def test_for_sinks_all(self) -> None:
        assert Channel.for_sinks(True, True) == (
            Channel.STDOUT,
            Channel.STDERR,
            Channel.EXIT_CODE,
        )


# ---------------------------------------------------------------------------
# ConduitSet
# ---------------------------------------------------------------------------


class TestConduitSet:
    def test_creates_private_directory(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        try:
            assert conduits.exists
            mode = stat.S_IMODE(os.stat(conduits.directory).st_mode)
            assert mode == 0o700
        finally:
            conduits.remove()

    def test_creates_fifo_per_channel(self) -> None:
        channels = Channel.for_sinks(True, True)
        conduits = ConduitSet(channels)
        try:
            assert len(conduits) == 3
            for channel in channels:
                path = conduits.path(channel)
                assert os.path.basename(path) == channel.value
                st = os.stat(path)
                assert stat.S_ISFIFO(st.st_mode)
                assert stat.S_IMODE(st.st_mode) == 0o600
        finally:
            conduits.remove()

    def test_inactive_channel_has_no_fifo(self) -> None:
        conduits = ConduitSet((Channel.STDOUT, Channel.EXIT_CODE))
        try:
            assert Channel.STDERR not in conduits
            assert not os.path.exists(os.path.join(conduits.directory, "stderr"))
            with pytest.raises(KeyError):
                conduits.path(Channel.STDERR)
        finally:
            conduits.remove()

    def test_exit_code_is_mandatory(self) -> None:
        with pytest.raises(ValueError):
            ConduitSet((Channel.STDOUT,))

    def test_unique_directories(self) -> None:
        a = ConduitSet((Channel.EXIT_CODE,))
        b = ConduitSet((Channel.EXIT_CODE,))
        try:
            assert a.directory != b.directory
        finally:
            a.remove()
            b.remove()

    def test_remove(self) -> None:
        conduits = ConduitSet(Channel.for_sinks(True, False))
        conduits.remove()
        assert not conduits.exists
        assert not os.path.exists(conduits.directory)

    def test_remove_twice_raises(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        conduits.remove()
        with pytest.raises(TransportError):
            conduits.remove()


# ---------------------------------------------------------------------------
# DrainGroup
# ---------------------------------------------------------------------------


class TestDrainGroup:
    def test_wait_with_nothing_armed(self) -> None:
        group = DrainGroup()
        assert group.wait(timeout=0) is True

    def test_wait_times_out_while_pending(self) -> None:
        group = DrainGroup()
        group.add(2)
        group.done(Channel.STDOUT)
        assert group.pending == 1
        assert group.wait(timeout=0.05) is False

    def test_wait_completes_when_all_done(self) -> None:
        group = DrainGroup()
        group.add(3)
        for channel in Channel:
            group.done(channel)
        assert group.pending == 0
        assert group.wait(timeout=0) is True

    def test_done_without_add_raises(self) -> None:
        group = DrainGroup()
        with pytest.raises(ValueError):
            group.done(Channel.EXIT_CODE)

    def test_negative_add_raises(self) -> None:
        with pytest.raises(ValueError):
            DrainGroup().add(-1)

    def test_errors_are_collected_then_cleared(self) -> None:
        group = DrainGroup()
        group.add(2)
        err = OSError("boom")
        group.done(Channel.STDOUT, err)
        group.done(Channel.EXIT_CODE)
        assert group.pop_errors() == [(Channel.STDOUT, err)]
        assert group.pop_errors() == []


# ---------------------------------------------------------------------------
# Drains
# ---------------------------------------------------------------------------


class TestDrain:
    def test_copies_fifo_into_sink(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        try:
            path = conduits.path(Channel.EXIT_CODE)
            sink = OutputBuffer()
            group = DrainGroup()
            group.add(1)
            thread = start_drain(Channel.EXIT_CODE, path, sink, group)

            # Blocks until the drain opens the read end
            with open(path, "wb") as writer:
                writer.write(b"42\n")

            assert group.wait(timeout=5)
            thread.join(5)
            assert sink.getvalue() == b"42\n"
            assert group.pop_errors() == []
        finally:
            conduits.remove()

    def test_drain_blocks_until_writer_closes(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        try:
            path = conduits.path(Channel.EXIT_CODE)
            sink = OutputBuffer()
            group = DrainGroup()
            group.add(1)
            start_drain(Channel.EXIT_CODE, path, sink, group)

            with open(path, "wb", buffering=0) as writer:
                writer.write(b"part")
                assert group.wait(timeout=0.1) is False
                writer.write(b"ial")

            assert group.wait(timeout=5)
            assert sink.getvalue() == b"partial"
        finally:
            conduits.remove()

    def test_missing_fifo_reports_error(self, tmp_path) -> None:
        group = DrainGroup()
        group.add(1)
        start_drain(Channel.STDOUT, str(tmp_path / "nope"), OutputBuffer(), group)
        assert group.wait(timeout=5)
        errors = group.pop_errors()
        assert len(errors) == 1
        assert errors[0][0] is Channel.STDOUT
        assert isinstance(errors[0][1], FileNotFoundError)


class TestUnblock:
    def test_no_reader(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        try:
            assert unblock(conduits.path(Channel.EXIT_CODE)) is False
        finally:
            conduits.remove()

    def test_missing_path(self, tmp_path) -> None:
        assert unblock(str(tmp_path / "gone")) is False

    def test_releases_blocked_drain(self) -> None:
        conduits = ConduitSet((Channel.EXIT_CODE,))
        try:
            path = conduits.path(Channel.EXIT_CODE)
            sink = OutputBuffer()
            group = DrainGroup()
            group.add(1)
            thread = start_drain(Channel.EXIT_CODE, path, sink, group)

            _unblock_when_ready(path)

            assert group.wait(timeout=5)
            thread.join(5)
            assert not thread.is_alive()
            assert sink.getvalue() == b""
        finally:
            conduits.remove()
