"""
Error taxonomy for the SOS emergency workflow
"""


class SOSError(Exception):
    """Base class for failures of a single emergency step."""


class PermissionDenied(SOSError):
    """Location, microphone or other access was refused."""


class ResourceUnavailable(SOSError):
    """No audio device, no network, no primary contact and the like."""


class TransientIO(SOSError):
    """A write or send that may succeed if attempted again."""
