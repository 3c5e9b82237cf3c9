"""Pydantic models shared by the scheduling, lifecycle and service layers."""
