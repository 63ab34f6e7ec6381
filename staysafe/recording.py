"""
Evidence recording for the SOS workflow
Captures the default microphone into a timestamped WAV file under an
app-private directory. One writer thread owns the file handle.
"""

import datetime
import logging
import threading
import wave
from pathlib import Path
from queue import Empty, Full, Queue

import numpy as np
import sounddevice as sd

from .config import (
    RECORDINGS_DIR, RECORDING_SAMPLE_RATE, RECORDING_CHANNELS,
    RECORDING_DTYPE, RECORDING_SAMPLE_WIDTH, RECORDING_BLOCK_SIZE,
    RECORDING_EXTENSION, MAX_RECORDING_SECONDS, RECORDING_QUEUE_SIZE,
    WRITER_JOIN_TIMEOUT_SECONDS
)
from .errors import ResourceUnavailable, TransientIO
from .models import ErrorKind, StepResult

logger = logging.getLogger(__name__)

START_STEP = "recording_start"
STOP_STEP = "recording_stop"


def default_input_device():
    """
    Return the default input device info, raising ResourceUnavailable if
    there is none
    """
    try:
        return sd.query_devices(kind="input")
    except (sd.PortAudioError, ValueError) as e:
        raise ResourceUnavailable(f"No audio input device: {e}") from e


def recording_filename(timestamp):
    return f"emergency_{timestamp.strftime('%Y-%m-%dT%H-%M-%S')}.{RECORDING_EXTENSION}"


class RecordingOrchestrator:
    """
    Acquires the audio input, writes it to disk and releases it on stop
    """

    def __init__(self, recordings_dir=RECORDINGS_DIR, sample_rate=RECORDING_SAMPLE_RATE,
                 channels=RECORDING_CHANNELS, max_seconds=MAX_RECORDING_SECONDS,
                 stream_factory=None, device_check=None, clock=datetime.datetime.now,
                 queue_size=RECORDING_QUEUE_SIZE, join_timeout=WRITER_JOIN_TIMEOUT_SECONDS):
        self.recordings_dir = Path(recordings_dir)
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_frames = int(max_seconds * sample_rate)

        self.stream_factory = stream_factory or sd.InputStream
        self.device_check = device_check or default_input_device
        self.clock = clock
        self.join_timeout = join_timeout

        # Decouples the PortAudio callback thread from disk writes
        self.audio_queue = Queue(maxsize=queue_size)

        self.is_recording = False
        self.stream = None
        self.wav_file = None
        self.writer_thread = None
        self.path = None
        self.frames_written = 0
        self.dropped_blocks = 0
        self.cutoff_reached = False
        self.write_error = None
        self._abandoned = threading.Event()

    def __enter__(self):
        self.start_recording()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop_recording()
        return False

    def audio_callback(self, indata, frames, time_info, status):
        """
        Stream callback - runs on the audio thread
        """
        if status:
            logger.debug(f"Input stream status: {status}")

        try:
            self.audio_queue.put_nowait(indata.copy())
        except Full:
            if self.dropped_blocks == 0:
                logger.warning("Recording queue full, dropping audio blocks")
            self.dropped_blocks += 1

    def _writer_loop(self, wav_file, abandoned):
        while not abandoned.is_set():
            try:
                block = self.audio_queue.get(timeout=0.5)
            except Empty:
                continue
            if block is None:
                break

            if self.write_error is not None or abandoned.is_set():
                continue  # keep draining so the callback never blocks

            remaining = self.max_frames - self.frames_written
            if remaining <= 0:
                if not self.cutoff_reached:
                    self.cutoff_reached = True
                    logger.warning(
                        f"Recording reached {self.max_frames / self.sample_rate:.0f}s limit, "
                        "discarding further audio"
                    )
                continue

            block = np.ascontiguousarray(block[:remaining], dtype=np.int16)
            try:
                wav_file.writeframes(block.tobytes())
            except OSError as e:
                logger.error(f"Recording write failed, discarding further audio: {e}")
                self.write_error = e
                continue
            self.frames_written += len(block)

    def _next_path(self):
        base = recording_filename(self.clock())
        path = self.recordings_dir / base
        suffix = 1
        while path.exists():
            stem, ext = base.rsplit(".", 1)
            path = self.recordings_dir / f"{stem}_{suffix}.{ext}"
            suffix += 1
        return path

    def start_recording(self):
        """
        Start capturing to a new file. Returns a StepResult carrying the path.
        """
        if self.is_recording:
            logger.warning("Recording already in progress")
            return StepResult.failure(
                START_STEP, ErrorKind.RESOURCE_UNAVAILABLE, "Recording already in progress"
            )

        try:
            self.device_check()
            self.recordings_dir.mkdir(parents=True, exist_ok=True)
            self.path = self._next_path()

            self.wav_file = wave.open(str(self.path), "wb")
            self.wav_file.setnchannels(self.channels)
            self.wav_file.setsampwidth(RECORDING_SAMPLE_WIDTH)
            self.wav_file.setframerate(self.sample_rate)

            while not self.audio_queue.empty():
                self.audio_queue.get_nowait()

            self.frames_written = 0
            self.dropped_blocks = 0
            self.cutoff_reached = False
            self.write_error = None

            self._abandoned = threading.Event()
            self.writer_thread = threading.Thread(
                target=self._writer_loop, args=(self.wav_file, self._abandoned), daemon=True
            )
            self.writer_thread.start()

            self.stream = self.stream_factory(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=RECORDING_DTYPE,
                blocksize=RECORDING_BLOCK_SIZE,
                callback=self.audio_callback,
            )
            self.stream.start()

        except sd.PortAudioError as e:
            self._release()
            logger.error(f"Recording failed to start: {e}")
            return StepResult.from_exception(START_STEP, ResourceUnavailable(str(e)))
        except Exception as e:
            self._release()
            logger.error(f"Recording failed to start: {e}")
            return StepResult.from_exception(START_STEP, e)

        self.is_recording = True
        logger.info(f"Recording started at {self.path}")
        return StepResult.success(START_STEP, self.path)

    def stop_recording(self):
        """
        Stop capturing and release the device and the file handle
        """
        if not self.is_recording and self.wav_file is None:
            return StepResult.success(STOP_STEP, None, "Not recording")

        path = self.path
        try:
            self._release()
        except (OSError, sd.PortAudioError) as e:
            logger.error(f"Recording failed to finalize: {e}")
            return StepResult.from_exception(STOP_STEP, TransientIO(str(e)))

        seconds = self.frames_written / self.sample_rate
        summary = f"{seconds:.1f}s recorded"
        if self.dropped_blocks:
            summary += f", {self.dropped_blocks} blocks dropped"

        if self.write_error is not None:
            logger.error(f"Recording at {path} is incomplete ({summary}): {self.write_error}")
            return StepResult.from_exception(
                STOP_STEP, TransientIO(f"Recording incomplete ({summary}): {self.write_error}")
            )

        logger.info(f"Recording stopped ({summary}) at {path}")
        return StepResult.success(STOP_STEP, path, summary)

    def _release(self):
        """
        Tear down in reverse order of acquisition; safe to call at any stage
        """
        self.is_recording = False

        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except sd.PortAudioError as e:
                logger.error(f"Failed to release input stream: {e}")

        writer, self.writer_thread = self.writer_thread, None
        if writer is not None and writer.is_alive():
            try:
                self.audio_queue.put(None, timeout=self.join_timeout)
            except Full:
                logger.error("Recording queue still full, writer not draining")
            writer.join(timeout=self.join_timeout)
            if writer.is_alive():
                logger.error(
                    f"Recording writer still busy after {self.join_timeout}s, closing file anyway"
                )
                self._abandoned.set()
                self.write_error = TransientIO("Recording writer did not finish")

        wav_file, self.wav_file = self.wav_file, None
        if wav_file is not None:
            wav_file.close()
