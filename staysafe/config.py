"""
Configuration constants for the StaySafe SOS emergency workflow
"""

from pathlib import Path

# Countdown Configuration
DEFAULT_COUNTDOWN_SECONDS = 5   # SOS button
OVERLAY_COUNTDOWN_SECONDS = 15  # full-screen SOS overlay
TICK_INTERVAL_SECONDS = 1.0

# PIN Configuration
EMERGENCY_PIN = "1234"  # would live in secure storage on a real device
PIN_LENGTH = 4
MAX_PIN_ATTEMPTS = 5  # wrong entries before PIN cancellation is locked out

# Recording Configuration
RECORDING_SAMPLE_RATE = 44100
RECORDING_CHANNELS = 1
RECORDING_DTYPE = "int16"
RECORDING_SAMPLE_WIDTH = 2  # bytes per int16 sample
RECORDING_BLOCK_SIZE = 1024
RECORDING_EXTENSION = "wav"
RECORDINGS_DIR = Path.home() / ".staysafe" / "EmergencyRecordings"
MAX_RECORDING_SECONDS = 600  # hard cutoff for evidence capture
RECORDING_QUEUE_SIZE = 256
WRITER_JOIN_TIMEOUT_SECONDS = 5.0

# Warning tone played when the countdown starts
ALERT_FREQUENCY_HZ = 880
ALERT_DURATION_SECONDS = 0.4
ALERT_VOLUME = 0.5

# Emergency Contacts (static list loaded at session start)
EMERGENCY_CONTACTS = [
    {"name": "Emergency Services", "phone_number": "911", "is_primary": True},
    {"name": "John Doe", "phone_number": "555-123-4567", "is_primary": False},
    {"name": "Jane Smith", "phone_number": "555-987-6543", "is_primary": False},
]

# Notification
MAPS_URL_TEMPLATE = "https://maps.google.com/maps?q={lat},{lon}"
EMERGENCY_MESSAGE = "EMERGENCY: I need help. My current location is: {maps_url}"
EMERGENCY_MESSAGE_NO_LOCATION = "EMERGENCY: I need help. My location is unavailable."
NOTIFY_ATTEMPTS = 3
NOTIFY_RETRY_DELAY_SECONDS = 0.5

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "emergency_log.txt"
