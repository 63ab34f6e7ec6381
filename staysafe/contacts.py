"""
Emergency contact list loading
"""

import json
import logging
from pathlib import Path

from .config import EMERGENCY_CONTACTS
from .models import EmergencyContact

logger = logging.getLogger(__name__)


def _contact_from_dict(entry):
    try:
        name = entry["name"]
        phone_number = entry["phone_number"]
    except (KeyError, TypeError):
        raise ValueError(f"Malformed contact entry: {entry!r}")

    if not name or not phone_number:
        raise ValueError(f"Contact needs a name and a phone number: {entry!r}")

    return EmergencyContact(
        name=str(name),
        phone_number=str(phone_number),
        is_primary=bool(entry.get("is_primary", False)),
    )


def default_contacts():
    """
    Static contact list used when no contacts file is given
    """
    return tuple(_contact_from_dict(entry) for entry in EMERGENCY_CONTACTS)


def load_contacts(path):
    """
    Load contacts from a JSON file holding a list of
    {"name", "phone_number", "is_primary"} objects
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of contacts")

    contacts = tuple(_contact_from_dict(entry) for entry in data)
    logger.info(f"Loaded {len(contacts)} emergency contacts from {path}")
    return contacts


def primary_contact(contacts):
    for contact in contacts:
        if contact.is_primary:
            return contact
    return None


def secondary_contacts(contacts):
    return [contact for contact in contacts if not contact.is_primary]
