"""Tests for the RecordingOrchestrator class."""

import datetime
import logging
import threading
import wave

import numpy as np
import pytest
import sounddevice as sd

from staysafe.config import RECORDING_BLOCK_SIZE, RECORDING_SAMPLE_RATE
from staysafe.errors import ResourceUnavailable
from staysafe.models import ErrorKind
from staysafe.recording import RecordingOrchestrator, recording_filename


def _frames_in(path):
    with wave.open(str(path), "rb") as wav:
        return wav.getnframes(), wav.getnchannels(), wav.getframerate()


class TestRecordingOrchestrator:
    """Test cases for RecordingOrchestrator."""

    def test_filename_uses_timestamp(self):
        """Files are named emergency_<ISO8601 timestamp>.wav."""
        ts = datetime.datetime(2024, 3, 9, 14, 5, 7)
        assert recording_filename(ts) == "emergency_2024-03-09T14-05-07.wav"

    def test_start_creates_directory_and_file(self, orchestrator, fake_stream):
        """Starting creates the recordings dir and opens a stream."""
        assert not orchestrator.recordings_dir.exists()

        result = orchestrator.start_recording()

        assert result.ok
        assert orchestrator.is_recording
        assert orchestrator.recordings_dir.is_dir()
        assert result.value.parent == orchestrator.recordings_dir
        assert result.value.name.startswith("emergency_")

        stream = fake_stream.instances[0]
        assert stream.started
        assert stream.kwargs["samplerate"] == RECORDING_SAMPLE_RATE
        assert stream.kwargs["channels"] == 1

        orchestrator.stop_recording()

    def test_stop_writes_audio_and_releases(self, orchestrator, fake_stream):
        """Captured blocks end up in a valid WAV and all handles are released."""
        path = orchestrator.start_recording().value
        stream = fake_stream.instances[0]
        stream.feed()
        stream.feed()

        result = orchestrator.stop_recording()

        assert result.ok
        assert result.value == path
        assert not orchestrator.is_recording
        assert orchestrator.wav_file is None
        assert orchestrator.stream is None
        assert orchestrator.writer_thread is None
        assert stream.closed

        frames, channels, rate = _frames_in(path)
        assert frames == 2 * RECORDING_BLOCK_SIZE
        assert channels == 1
        assert rate == RECORDING_SAMPLE_RATE

    def test_stop_when_idle_is_noop(self, orchestrator):
        """Stopping without a recording succeeds and does nothing."""
        result = orchestrator.stop_recording()
        assert result.ok
        assert result.value is None

    def test_second_start_is_refused(self, orchestrator, fake_stream):
        """Only one recording may hold the device at a time."""
        orchestrator.start_recording()
        result = orchestrator.start_recording()

        assert not result.ok
        assert result.error_kind is ErrorKind.RESOURCE_UNAVAILABLE
        assert len(fake_stream.instances) == 1

        orchestrator.stop_recording()

    def test_no_input_device(self, tmp_path, fake_stream):
        """A missing microphone is a resource failure and nothing is left open."""
        def no_device():
            raise ResourceUnavailable("No audio input device")

        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=fake_stream,
            device_check=no_device,
        )
        result = orchestrator.start_recording()

        assert not result.ok
        assert result.error_kind is ErrorKind.RESOURCE_UNAVAILABLE
        assert not orchestrator.is_recording
        assert fake_stream.instances == []

    def test_stream_error_releases_file(self, tmp_path):
        """A PortAudio failure while opening the stream releases the file."""
        def broken_stream(**kwargs):
            raise sd.PortAudioError("Device unavailable")

        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=broken_stream,
            device_check=lambda: None,
        )
        result = orchestrator.start_recording()

        assert not result.ok
        assert result.error_kind is ErrorKind.RESOURCE_UNAVAILABLE
        assert orchestrator.wav_file is None
        assert orchestrator.writer_thread is None

    def test_permission_error_maps_to_permission_denied(self, tmp_path, fake_stream):
        """Refused microphone access is reported as permission denied."""
        def denied(**kwargs):
            raise PermissionError("Microphone access denied")

        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=denied,
            device_check=lambda: None,
        )
        result = orchestrator.start_recording()

        assert result.error_kind is ErrorKind.PERMISSION_DENIED

    def test_max_duration_cutoff(self, tmp_path, fake_stream):
        """Audio past the maximum duration is discarded."""
        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            sample_rate=1000,
            max_seconds=1.5,
            stream_factory=fake_stream,
            device_check=lambda: None,
        )
        path = orchestrator.start_recording().value
        stream = fake_stream.instances[0]
        for _ in range(4):
            stream.feed(frames=1000)

        orchestrator.stop_recording()

        assert orchestrator.cutoff_reached
        assert _frames_in(path)[0] == 1500

    def test_same_second_does_not_overwrite(self, tmp_path, fake_stream):
        """Two recordings in the same second get distinct files."""
        fixed = datetime.datetime(2024, 1, 1, 12, 0, 0)
        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=fake_stream,
            device_check=lambda: None,
            clock=lambda: fixed,
        )
        first = orchestrator.start_recording().value
        orchestrator.stop_recording()
        second = orchestrator.start_recording().value
        orchestrator.stop_recording()

        assert first != second
        assert first.exists() and second.exists()

    def test_context_manager_releases_on_error(self, orchestrator, fake_stream):
        """Leaving the block through an exception still stops the recording."""
        with pytest.raises(RuntimeError):
            with orchestrator:
                assert orchestrator.is_recording
                raise RuntimeError("view torn down")

        assert not orchestrator.is_recording
        assert fake_stream.instances[0].closed

    def test_write_failure_reported_on_stop(self, orchestrator, fake_stream):
        """A failed disk write makes the stop result a transient I/O failure."""
        orchestrator.start_recording()

        def disk_full(data):
            raise OSError("disk full")

        orchestrator.wav_file.writeframes = disk_full
        stream = fake_stream.instances[0]
        stream.feed()
        stream.feed()

        result = orchestrator.stop_recording()

        assert not result.ok
        assert result.error_kind is ErrorKind.TRANSIENT_IO
        assert "disk full" in result.message
        assert not orchestrator.is_recording
        assert orchestrator.wav_file is None
        assert orchestrator.writer_thread is None

    def test_dropped_blocks_are_counted_and_logged(self, tmp_path, fake_stream, caplog):
        """Blocks arriving while the queue is full are dropped with a warning."""
        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=fake_stream,
            device_check=lambda: None,
            queue_size=2,
        )
        block = np.zeros((RECORDING_BLOCK_SIZE, 1), dtype=np.int16)

        with caplog.at_level(logging.WARNING, logger="staysafe.recording"):
            for _ in range(5):
                orchestrator.audio_callback(block, RECORDING_BLOCK_SIZE, None, None)

        assert orchestrator.dropped_blocks == 3
        warnings = [r for r in caplog.records if "dropping audio" in r.getMessage()]
        assert len(warnings) == 1

    def test_stuck_writer_is_reported(self, tmp_path, fake_stream):
        """A writer that outlives the join timeout fails the stop step."""
        orchestrator = RecordingOrchestrator(
            recordings_dir=tmp_path / "rec",
            stream_factory=fake_stream,
            device_check=lambda: None,
            join_timeout=0.2,
        )
        orchestrator.start_recording()

        release = threading.Event()
        entered = threading.Event()

        def slow_write(data):
            entered.set()
            release.wait(5.0)

        orchestrator.wav_file.writeframes = slow_write
        fake_stream.instances[0].feed()
        assert entered.wait(2.0)

        try:
            result = orchestrator.stop_recording()
        finally:
            release.set()

        assert not result.ok
        assert result.error_kind is ErrorKind.TRANSIENT_IO
        assert orchestrator.wav_file is None
