"""Pytest configuration and fixtures for StaySafe SOS tests."""

import pytest
import numpy as np
import sys
import os

# Add repository root to path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from staysafe.config import RECORDING_BLOCK_SIZE
from staysafe.contacts import default_contacts
from staysafe.countdown import CountdownEngine
from staysafe.location import StaticLocationProvider
from staysafe.models import Coordinate, StepResult
from staysafe.notifier import LogTransport, Notifier
from staysafe.recording import RecordingOrchestrator


class ManualHandle:
    """One-shot timer handle with the asyncio.TimerHandle cancel() contract."""

    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def run(self):
        if not self.cancelled:
            self.cancelled = True
            self.callback(*self.args)


class ManualLoop:
    """Loop double whose clock only moves when the test advances it."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self.now + delay, callback, args)
        self.timers.append(handle)
        return handle

    def pending(self):
        return [h for h in self.timers if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.run()
        self.now = target


class FakeRecorder:
    """Recorder double tracking start/stop calls."""

    def __init__(self, fail=None):
        self.fail = fail
        self.is_recording = False
        self.starts = 0
        self.stops = 0

    def start_recording(self):
        self.starts += 1
        if self.fail is not None:
            raise self.fail
        self.is_recording = True
        return StepResult.success("recording_start", "/tmp/emergency_test.wav")

    def stop_recording(self):
        self.stops += 1
        self.is_recording = False
        return StepResult.success("recording_stop", "/tmp/emergency_test.wav")


class FakeStream:
    """Stand-in for sounddevice.InputStream."""

    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.closed = False
        FakeStream.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True

    def feed(self, frames=RECORDING_BLOCK_SIZE, value=100):
        block = np.full((frames, 1), value, dtype=np.int16)
        self.callback(block, frames, None, None)


@pytest.fixture
def loop():
    return ManualLoop()


@pytest.fixture
def contacts():
    return default_contacts()


@pytest.fixture
def location():
    return Coordinate(51.5074, -0.1278)


@pytest.fixture
def transport():
    return LogTransport()


@pytest.fixture
def notifier(transport, loop):
    return Notifier(transport=transport, loop=loop)


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def engine(loop, notifier, recorder, contacts, location):
    """Countdown engine wired to test doubles."""
    return CountdownEngine(
        loop=loop,
        notifier=notifier,
        location_provider=StaticLocationProvider(location),
        recorder=recorder,
        contacts=contacts,
    )


@pytest.fixture
def denied_location():
    return StaticLocationProvider(None)


@pytest.fixture
def fake_stream():
    FakeStream.instances = []
    return FakeStream


@pytest.fixture
def orchestrator(tmp_path, fake_stream):
    """Recording orchestrator writing into a temp dir without audio hardware."""
    return RecordingOrchestrator(
        recordings_dir=tmp_path / "EmergencyRecordings",
        stream_factory=fake_stream,
        device_check=lambda: {"name": "fake input"},
    )
