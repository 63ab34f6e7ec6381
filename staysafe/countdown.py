"""
SOS countdown engine

Runs a PIN-cancellable countdown on a single-threaded event loop. When the
countdown expires the session is triggered exactly once: the location is
fetched, the primary contact is called, every other contact is messaged and
evidence recording starts. Each of those steps is fail-open: its outcome is
recorded in the session report and the next step runs regardless.
"""

import datetime
import hmac
import logging

from .config import (
    DEFAULT_COUNTDOWN_SECONDS, TICK_INTERVAL_SECONDS, EMERGENCY_PIN,
    PIN_LENGTH, MAX_PIN_ATTEMPTS
)
from .contacts import default_contacts
from .models import EmergencySession, ErrorKind, SessionState, StepResult

logger = logging.getLogger(__name__)

LOCATION_STEP = "location"


def validate_pin(pin):
    if not isinstance(pin, str) or len(pin) != PIN_LENGTH or not pin.isdigit():
        raise ValueError(f"PIN must be a {PIN_LENGTH}-digit string")
    return pin


class CountdownEngine:
    """
    Owns the EmergencySession; all mutation happens on the loop thread
    """

    def __init__(self, loop, notifier, location_provider, recorder=None, contacts=None,
                 alert=None, pin=EMERGENCY_PIN, max_pin_attempts=MAX_PIN_ATTEMPTS,
                 tick_interval=TICK_INTERVAL_SECONDS, on_tick=None, on_state_change=None,
                 clock=datetime.datetime.now):
        self.loop = loop
        self.notifier = notifier
        self.location_provider = location_provider
        self.recorder = recorder
        self.contacts = tuple(contacts) if contacts is not None else default_contacts()
        self.alert = alert
        self.pin = validate_pin(pin)
        self.max_pin_attempts = max_pin_attempts
        self.tick_interval = tick_interval
        self.on_tick = on_tick
        self.on_state_change = on_state_change
        self.clock = clock

        self.session = None
        self.trigger_count = 0
        self._timer = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self):
        if self.session is None:
            return SessionState.IDLE
        return self.session.state

    @property
    def seconds_remaining(self):
        return self.session.seconds_remaining if self.session else 0

    @property
    def pin_locked_out(self):
        if self.session is None or self.max_pin_attempts is None:
            return False
        return self.session.failed_pin_attempts >= self.max_pin_attempts

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    def _schedule_tick(self):
        self._timer = self.loop.call_later(self.tick_interval, self.tick)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _state_changed(self):
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(self.state)
        except Exception:
            logger.exception("State change listener failed")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def start(self, duration_seconds=DEFAULT_COUNTDOWN_SECONDS):
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int):
            raise ValueError("duration_seconds must be an integer")
        if duration_seconds <= 0:
            raise ValueError("duration_seconds must be positive")
        if self.state is SessionState.COUNTDOWN:
            raise RuntimeError("Countdown already running")

        if self.session is not None:
            self.reset()

        self.session = EmergencySession(
            pin=self.pin,
            seconds_remaining=duration_seconds,
            started_at=self.clock(),
        )
        logger.info(f"SOS countdown started ({duration_seconds}s)")

        if self.alert is not None:
            self.alert.play()

        self._schedule_tick()
        return self.session

    def tick(self):
        if self.state is not SessionState.COUNTDOWN:
            return

        self._cancel_timer()
        session = self.session
        session.seconds_remaining = max(0, session.seconds_remaining - 1)

        if session.seconds_remaining == 0:
            self.trigger()
            return

        if self.on_tick is not None:
            try:
                self.on_tick(session.seconds_remaining)
            except Exception:
                logger.exception("Tick side effect failed")

        self._schedule_tick()

    def submit_pin(self, candidate):
        """
        Cancel the countdown if candidate matches the PIN.
        Returns True only when this call cancelled the session.
        """
        if self.state is not SessionState.COUNTDOWN:
            return False

        session = self.session
        if self.pin_locked_out:
            logger.warning("PIN entry locked out, countdown continues")
            return False

        if hmac.compare_digest(str(candidate).encode(), session.pin.encode()):
            self._cancel_timer()
            session.state = SessionState.CANCELLED
            logger.info(f"SOS cancelled by PIN with {session.seconds_remaining}s remaining")
            self._state_changed()
            return True

        session.failed_pin_attempts += 1
        logger.warning(
            f"Incorrect PIN ({session.failed_pin_attempts}/{self.max_pin_attempts})"
            if self.max_pin_attempts else "Incorrect PIN"
        )
        if self.pin_locked_out:
            logger.warning("Too many incorrect PIN attempts, cancellation disabled")
        return False

    def _guarded(self, step, action):
        """
        Run one emergency step; any exception becomes a failed StepResult
        """
        try:
            return action()
        except Exception as e:
            result = StepResult.from_exception(step, e)
            if result.error_kind is ErrorKind.UNEXPECTED:
                logger.exception(f"Emergency step '{step}' hit an unexpected error")
            else:
                logger.error(f"Emergency step '{step}' failed: {e}")
            return result

    def _fetch_location(self):
        location = self.location_provider.current_location()
        self.session.last_location = location
        logger.info(f"Location obtained: {location.latitude}, {location.longitude}")
        return StepResult.success(LOCATION_STEP, location)

    def trigger(self):
        """
        Fire the emergency actions. Only the first call per session has effect.
        """
        if self.state is not SessionState.COUNTDOWN:
            return self.session.report if self.session else None

        self._cancel_timer()
        session = self.session
        session.state = SessionState.TRIGGERED
        session.seconds_remaining = 0
        session.triggered_at = self.clock()
        self.trigger_count += 1
        logger.critical("SOS TRIGGERED - notifying emergency contacts")

        report = session.report
        report.add(self._guarded(LOCATION_STEP, self._fetch_location))
        report.add(self._guarded(
            "call_primary", lambda: self.notifier.call_primary(self.contacts)
        ))

        notified = self._guarded(
            "notify_contacts",
            lambda: self.notifier.notify_contacts(self.contacts, session.last_location),
        )
        if isinstance(notified, StepResult):
            report.add(notified)
        else:
            report.extend(notified)

        if self.recorder is not None:
            result = report.add(self._guarded("recording_start", self.recorder.start_recording))
            if result.ok:
                session.recording_path = result.value
        else:
            logger.info("Evidence recording disabled")

        for failure in report.failures():
            logger.warning(f"Degraded emergency step {failure.step}: {failure.message}")
        for pending in report.pending():
            logger.info(f"Still retrying {pending.step}: {pending.message}")

        self._state_changed()

        return report

    def stop(self):
        """
        End the session: stop the timer and any in-progress recording
        """
        self._cancel_timer()
        if self.session is None:
            return None

        session = self.session
        if session.state is SessionState.COUNTDOWN:
            session.state = SessionState.CANCELLED
            logger.info("SOS countdown stopped")
            self._state_changed()

        if self.recorder is not None and self.recorder.is_recording:
            session.report.add(self._guarded("recording_stop", self.recorder.stop_recording))

        return session.report

    cancel = stop

    def reset(self):
        self.stop()
        self.session = None
