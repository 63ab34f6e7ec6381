"""
Audible warning played when the SOS countdown starts
"""

import logging

import numpy as np
import sounddevice as sd

from .config import (
    ALERT_FREQUENCY_HZ, ALERT_DURATION_SECONDS, ALERT_VOLUME, RECORDING_SAMPLE_RATE
)

logger = logging.getLogger(__name__)


def make_tone(frequency=ALERT_FREQUENCY_HZ, duration=ALERT_DURATION_SECONDS,
              sample_rate=RECORDING_SAMPLE_RATE, volume=ALERT_VOLUME):
    """
    Sine beep with a short linear fade in/out to avoid clicks
    """
    samples = int(sample_rate * duration)
    t = np.linspace(0, duration, samples, endpoint=False)
    tone = np.sin(2 * np.pi * frequency * t) * volume

    fade = min(samples // 10, int(sample_rate * 0.01))
    if fade > 0:
        ramp = np.linspace(0.0, 1.0, fade)
        tone[:fade] *= ramp
        tone[-fade:] *= ramp[::-1]

    return tone.astype(np.float32)


class AlertTone:
    """
    Plays the warning beep without blocking the countdown
    """

    def __init__(self, sample_rate=RECORDING_SAMPLE_RATE, player=None):
        self.sample_rate = sample_rate
        self.player = player or sd.play
        self.tone = make_tone(sample_rate=sample_rate)

    def play(self):
        try:
            self.player(self.tone, self.sample_rate)
        except Exception as e:
            logger.warning(f"Could not play warning tone: {e}")
            return False
        return True
