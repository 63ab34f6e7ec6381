"""
StaySafe SOS emergency workflow

A PIN-cancellable emergency countdown that, on expiry, fetches the user's
location, calls emergency services, messages emergency contacts and
records audio evidence.

Components:
- Countdown engine driven by an asyncio event loop
- Recording orchestrator with a dedicated writer thread
- Notifier with bounded, loop-scheduled delivery retries
- Fail-open step results aggregated into a session report
"""

from .config import (
    DEFAULT_COUNTDOWN_SECONDS, OVERLAY_COUNTDOWN_SECONDS, EMERGENCY_PIN,
    MAX_PIN_ATTEMPTS, MAX_RECORDING_SECONDS
)
from .models import (
    Coordinate, EmergencyContact, EmergencySession, ErrorKind,
    SessionReport, SessionState, StepResult
)
from .errors import SOSError, PermissionDenied, ResourceUnavailable, TransientIO
from .countdown import CountdownEngine
from .notifier import Notifier, LogTransport, MessageTransport
from .recording import RecordingOrchestrator
from .location import LocationProvider, StaticLocationProvider, IPLocationProvider
from .main import SOSApp

__all__ = [
    "DEFAULT_COUNTDOWN_SECONDS", "OVERLAY_COUNTDOWN_SECONDS", "EMERGENCY_PIN",
    "MAX_PIN_ATTEMPTS", "MAX_RECORDING_SECONDS",
    "Coordinate", "EmergencyContact", "EmergencySession", "ErrorKind",
    "SessionReport", "SessionState", "StepResult",
    "SOSError", "PermissionDenied", "ResourceUnavailable", "TransientIO",
    "CountdownEngine", "Notifier", "LogTransport", "MessageTransport",
    "RecordingOrchestrator", "LocationProvider", "StaticLocationProvider",
    "IPLocationProvider", "SOSApp",
]

__version__ = "1.0.0"
