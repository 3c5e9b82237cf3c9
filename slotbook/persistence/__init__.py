"""In-process persistence collaborator: versioned appointment store, directory, keyed locks."""

from slotbook.persistence.appointment_store import AppointmentStore
from slotbook.persistence.directory import Directory
from slotbook.persistence.locks import KeyedLocks

__all__ = ["AppointmentStore", "Directory", "KeyedLocks"]
