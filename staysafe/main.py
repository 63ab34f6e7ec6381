"""
Command-line interface for the StaySafe SOS workflow
"""

import argparse
import asyncio
import logging
import sys
import threading

import sounddevice as sd

from .alerts import AlertTone
from .config import (
    DEFAULT_COUNTDOWN_SECONDS, OVERLAY_COUNTDOWN_SECONDS, EMERGENCY_PIN,
    LOG_FILE, LOG_FORMAT, RECORDINGS_DIR, NOTIFY_RETRY_DELAY_SECONDS
)
from .contacts import default_contacts, load_contacts
from .countdown import CountdownEngine
from .location import IPLocationProvider, StaticLocationProvider
from .models import SessionState
from .notifier import Notifier
from .recording import RecordingOrchestrator

logger = logging.getLogger(__name__)


class SOSApp:
    """
    Wires the collaborators together and drives one SOS session from a terminal.
    The countdown runs on an asyncio loop; stdin is read on a separate thread
    and handed over with call_soon_threadsafe.
    """

    def __init__(self, contacts=None, location_provider=None, recorder=None,
                 notifier=None, alert=None, pin=EMERGENCY_PIN, loop=None,
                 stdin=None, stdout=None):
        self._owns_loop = loop is None
        self.loop = loop or asyncio.new_event_loop()
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

        self._state_changed = None
        self._ended = None

        self.engine = CountdownEngine(
            loop=self.loop,
            notifier=notifier or Notifier(loop=self.loop, log_file=LOG_FILE),
            location_provider=location_provider or IPLocationProvider(),
            recorder=recorder,
            contacts=contacts,
            alert=alert,
            pin=pin,
            on_tick=self._show_remaining,
            on_state_change=self._on_state_change,
        )

    def _print(self, text):
        print(text, file=self.stdout, flush=True)

    def _show_remaining(self, seconds):
        self._print(f"  {seconds}s remaining - enter PIN to cancel")

    def _on_state_change(self, state):
        if self._state_changed is not None:
            self._state_changed.set()

    # -------------------------------------------------------------------
    # Input runs on its own thread and is handed to the loop
    # -------------------------------------------------------------------
    def _read_input(self):
        try:
            for line in self.stdin:
                self.loop.call_soon_threadsafe(self._handle_input, line.strip())
            self.loop.call_soon_threadsafe(self._end_session)
        except RuntimeError as e:
            logger.debug(f"Input after the session loop closed: {e}")

    def _handle_input(self, text):
        if self.engine.state is SessionState.COUNTDOWN:
            if not self.engine.submit_pin(text):
                if self.engine.pin_locked_out:
                    self._print("  PIN locked out")
                else:
                    self._print("  Incorrect PIN")
        else:
            self._end_session()

    def _end_session(self):
        if self._ended is not None:
            self._ended.set()

    async def _run(self, duration_seconds):
        self._state_changed = asyncio.Event()
        self._ended = asyncio.Event()

        self.engine.start(duration_seconds)
        self._print(f"[*] SOS in {duration_seconds}s - enter PIN to cancel")
        threading.Thread(target=self._read_input, daemon=True).start()

        while self.engine.state is SessionState.COUNTDOWN:
            await self._state_changed.wait()
            self._state_changed.clear()

        if self.engine.state is SessionState.CANCELLED:
            self._print("[*] SOS cancelled")
            return

        self._print("\n*** SOS SENT ***\n")
        if self.engine.recorder is not None and self.engine.recorder.is_recording:
            self._print("[*] Recording in progress - press Enter to end emergency")
            await self._ended.wait()

        # Let scheduled delivery retries settle before ending the session
        while self.engine.session.report.pending():
            await asyncio.sleep(NOTIFY_RETRY_DELAY_SECONDS)

    def run_sos(self, duration_seconds=DEFAULT_COUNTDOWN_SECONDS):
        """
        Run one session to completion and return its report
        """
        try:
            self.loop.run_until_complete(self._run(duration_seconds))
        except KeyboardInterrupt:
            self._print("\n[*] Stopping...")
        finally:
            report = self.engine.stop()
            if self._owns_loop:
                self.loop.close()

        if report is not None:
            self.print_report(report)
        return report

    def print_report(self, report):
        for result in report.results:
            if result.ok:
                status = "ok"
            elif result.pending:
                status = "PENDING"
            else:
                status = f"FAILED ({result.error_kind.value})"
            detail = f" - {result.message}" if result.message else ""
            self._print(f"  {result.step}: {status}{detail}")

# -------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------
def _contacts_from_args(args):
    if args.contacts:
        return load_contacts(args.contacts)
    return default_contacts()


def _location_from_args(args):
    if args.lat is not None and args.lon is not None:
        return StaticLocationProvider((args.lat, args.lon))
    if args.no_location:
        return StaticLocationProvider(None)
    return IPLocationProvider()


def cmd_run(args):
    recorder = None
    if not args.no_record:
        recorder = RecordingOrchestrator(recordings_dir=args.recordings_dir)

    app = SOSApp(
        contacts=_contacts_from_args(args),
        location_provider=_location_from_args(args),
        recorder=recorder,
        alert=None if args.silent else AlertTone(),
        pin=args.pin,
    )
    app.run_sos(OVERLAY_COUNTDOWN_SECONDS if args.overlay else args.duration)
    return 0


def cmd_contacts(args):
    for contact in _contacts_from_args(args):
        marker = " (primary)" if contact.is_primary else ""
        print(f"{contact.name}: {contact.phone_number}{marker}")
    return 0


def cmd_devices(args):
    print(sd.query_devices())
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="StaySafe SOS emergency countdown"
    )
    parser.add_argument(
        "command",
        choices=["run", "contacts", "devices"],
        help="Command to execute",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=DEFAULT_COUNTDOWN_SECONDS,
        help=f"Countdown length in seconds (default: {DEFAULT_COUNTDOWN_SECONDS})",
    )
    parser.add_argument(
        "--overlay",
        action="store_true",
        help=f"Use the full-screen SOS countdown ({OVERLAY_COUNTDOWN_SECONDS}s)",
    )
    parser.add_argument("--pin", default=EMERGENCY_PIN, help="4-digit cancel PIN")
    parser.add_argument("--contacts", help="JSON file with emergency contacts")
    parser.add_argument("--lat", type=float, help="Fixed latitude instead of IP lookup")
    parser.add_argument("--lon", type=float, help="Fixed longitude instead of IP lookup")
    parser.add_argument(
        "--no-location",
        action="store_true",
        help="Behave as if location access were denied",
    )
    parser.add_argument(
        "--recordings-dir",
        default=str(RECORDINGS_DIR),
        help=f"Where evidence recordings are written (default: {RECORDINGS_DIR})",
    )
    parser.add_argument("--no-record", action="store_true", help="Skip evidence recording")
    parser.add_argument("--silent", action="store_true", help="Skip the warning tone")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


# -------------------------------------------------------------------
# Entry point
# -------------------------------------------------------------------
def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    if args.duration <= 0:
        parser.error("--duration must be positive")
    if (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")

    commands = {
        "run": cmd_run,
        "contacts": cmd_contacts,
        "devices": cmd_devices,
    }
    try:
        return commands[args.command](args)
    except ValueError as e:
        logger.error(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
