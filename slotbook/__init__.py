"""Appointment slot computation and conflict-safe booking lifecycle."""

__version__ = "0.1.0"
