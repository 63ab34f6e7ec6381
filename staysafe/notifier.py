"""
Emergency contact dispatch
Calls the primary (emergency services) contact and messages every other
contact with a maps link to the last known location.
"""

import datetime
import logging
import time

from .config import (
    MAPS_URL_TEMPLATE, EMERGENCY_MESSAGE, EMERGENCY_MESSAGE_NO_LOCATION,
    NOTIFY_ATTEMPTS, NOTIFY_RETRY_DELAY_SECONDS
)
from .contacts import primary_contact, secondary_contacts
from .errors import PermissionDenied, ResourceUnavailable, TransientIO
from .models import ErrorKind, StepResult

logger = logging.getLogger(__name__)

CALL_STEP = "call_primary"
MESSAGE_STEP = "notify_contact"


def maps_url(location):
    return MAPS_URL_TEMPLATE.format(lat=location.latitude, lon=location.longitude)


def build_message(location):
    """
    Message body sent to each non-primary contact
    """
    if location is None:
        return EMERGENCY_MESSAGE_NO_LOCATION
    return EMERGENCY_MESSAGE.format(maps_url=maps_url(location))


def dial_uri(contact):
    number = contact.phone_number.replace("-", "").replace(" ", "")
    return f"tel://{number}"


class MessageTransport:
    """
    Delivery channel for calls and messages. Implementations raise
    TransientIO / ResourceUnavailable for failures worth retrying and
    PermissionDenied for ones that are not.
    """

    def send_message(self, contact, body):
        raise NotImplementedError

    def place_call(self, contact, uri):
        raise NotImplementedError


class LogTransport(MessageTransport):
    """
    Logs calls and messages instead of sending them (mock implementation)
    In production, this would hand off to the telephony/SMS provider
    """

    def __init__(self):
        self.messages = []
        self.calls = []

    def send_message(self, contact, body):
        logger.warning(f"Sending to {contact.name} ({contact.phone_number}): {body}")
        self.messages.append((contact, body))

    def place_call(self, contact, uri):
        logger.warning(f"Calling emergency services: {uri}")
        self.calls.append((contact, uri))


class Notifier:
    """
    Formats and dispatches emergency notifications with bounded retries

    With a loop, retries are scheduled with loop.call_later and the result
    returned by call_primary/notify_contacts stays pending until settled.
    Without one, retries sleep in place.
    """

    def __init__(self, transport=None, attempts=NOTIFY_ATTEMPTS,
                 retry_delay=NOTIFY_RETRY_DELAY_SECONDS, loop=None, sleep=time.sleep,
                 log_file=None):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        self.transport = transport or LogTransport()
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.loop = loop
        self.sleep = sleep
        self.log_file = log_file

    def _deliver(self, step, description, send):
        result = StepResult.pending_for(step, description)
        self._attempt(result, description, send, 1)
        return result

    def _attempt(self, result, description, send, attempt):
        try:
            send()
        except PermissionDenied as e:
            logger.error(f"{description} refused: {e}")
            result.resolve(StepResult.from_exception(result.step, e))
            return
        except (TransientIO, ResourceUnavailable) as e:
            logger.warning(f"{description} failed (attempt {attempt}/{self.attempts}): {e}")
            if attempt >= self.attempts:
                logger.error(f"{description} gave up after {self.attempts} attempts")
                result.resolve(StepResult.from_exception(result.step, e))
                return

            result.message = f"{description} (retrying: {e})"
            if self.loop is not None:
                self.loop.call_later(
                    self.retry_delay, self._attempt, result, description, send, attempt + 1
                )
            else:
                self.sleep(self.retry_delay)
                self._attempt(result, description, send, attempt + 1)
            return
        except Exception as e:
            logger.exception(f"{description} failed unexpectedly")
            result.resolve(StepResult.from_exception(result.step, e))
            return

        self._write_log(description)
        result.resolve(StepResult.success(result.step, attempt, description))

    def _write_log(self, description):
        if not self.log_file:
            return

        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] {description}\n")
        except OSError as e:
            logger.error(f"Could not write emergency log {self.log_file}: {e}")

    def call_primary(self, contacts):
        contact = primary_contact(contacts)
        if contact is None:
            logger.error("No primary emergency contact configured")
            return StepResult.failure(
                CALL_STEP, ErrorKind.RESOURCE_UNAVAILABLE, "No primary emergency contact"
            )

        uri = dial_uri(contact)
        return self._deliver(
            CALL_STEP,
            f"CALL {contact.name} {uri}",
            lambda: self.transport.place_call(contact, uri),
        )

    def notify_contacts(self, contacts, location):
        if location is None:
            logger.warning("Location not available, sending message without a map link")

        body = build_message(location)
        results = []
        for contact in secondary_contacts(contacts):
            results.append(self._deliver(
                MESSAGE_STEP,
                f"MESSAGE {contact.name} {contact.phone_number}: {body}",
                lambda contact=contact: self.transport.send_message(contact, body),
            ))
        return results
