"""Shared pytest configuration and fixtures for the decibel meter test suite.

Nothing here touches real audio hardware: sessions are driven by
FakeAudioSource, a scripted stand-in for the microphone.
"""

from __future__ import annotations

import sys
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import numpy as np
import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from decibel_meter.audio_source import BaseAudioSource, FrameRead  # noqa: E402
from decibel_meter.session import SamplingSession, SessionConfig  # noqa: E402
from decibel_meter.sinks import ErrorEvent, QueueReadingSink, ReadingEvent, StateEvent  # noqa: E402


# =============================================================================
# Frame helpers
# =============================================================================

def ok_frame(amplitude: int = 1000, size: int = 1000) -> FrameRead:
    samples = np.full(size, amplitude, dtype=np.int16)
    return FrameRead(samples=samples, count=size)


def failed_frame(message: str = "ERROR_INVALID_OPERATION") -> FrameRead:
    return FrameRead.failed(message)


# =============================================================================
# Fake microphone
# =============================================================================

class FakeAudioSource(BaseAudioSource):
    """Scripted microphone.

    Reads pop FrameRead objects from ``script``; once it is empty,
    ``exhausted`` is set and ``when_exhausted`` is returned forever.
    """

    def __init__(
        self,
        script: Optional[Iterable[FrameRead]] = None,
        when_exhausted: Optional[FrameRead] = None,
        open_error: Optional[BaseException] = None,
        read_delay: float = 0.0,
        frame_size: int = 1000,
    ):
        self.script = deque(script or [])
        self.when_exhausted = when_exhausted or ok_frame()
        self.open_error = open_error
        self.read_delay = read_delay
        self._frame_size = frame_size

        self.opens = 0
        self.closes = 0
        self.reads = 0
        self.is_open = False
        self.read_threads: set = set()
        self.exhausted = threading.Event()

    def open(self) -> None:
        self.opens += 1
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    @property
    def frame_size(self) -> int:
        return self._frame_size

    def read_frame(self, max_samples: int) -> FrameRead:
        self.reads += 1
        self.read_threads.add(threading.get_ident())
        if self.read_delay:
            time.sleep(self.read_delay)
        if self.script:
            return self.script.popleft()
        self.exhausted.set()
        return self.when_exhausted

    def close(self) -> None:
        if self.is_open:
            self.closes += 1
        self.is_open = False


# =============================================================================
# Session fixtures
# =============================================================================

@pytest.fixture
def sink() -> QueueReadingSink:
    return QueueReadingSink()


@pytest.fixture
def device_lock() -> threading.Lock:
    """Private microphone lock so tests never contend on the process-wide one."""
    return threading.Lock()


@pytest.fixture
def fast_config() -> SessionConfig:
    return SessionConfig(cadence_ms=1, cancel_grace_s=2.0)


@pytest.fixture
def make_session(sink, device_lock, fast_config) -> Callable[..., SamplingSession]:
    """Build a session around a single FakeAudioSource."""

    def _make(source: BaseAudioSource, config: Optional[SessionConfig] = None, **kwargs) -> SamplingSession:
        return SamplingSession(
            config or fast_config,
            sink=kwargs.pop("sink", sink),
            source_factory=lambda cfg: source,
            device_lock=kwargs.pop("device_lock", device_lock),
            **kwargs,
        )

    return _make


def drain_all(sink: QueueReadingSink) -> List:
    return list(sink.drain())


def readings_of(events) -> List:
    return [e.reading for e in events if isinstance(e, ReadingEvent)]


def errors_of(events) -> List:
    return [e.error for e in events if isinstance(e, ErrorEvent)]


def states_of(events) -> List:
    return [e.state for e in events if isinstance(e, StateEvent)]


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
