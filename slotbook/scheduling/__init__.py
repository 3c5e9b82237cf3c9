"""Availability rules, slot generation, conflict and capacity checks."""
