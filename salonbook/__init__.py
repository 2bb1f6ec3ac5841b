"""Appointment scheduling and slot-locking engine for multi-tenant salons."""

__version__ = "0.1.0"
