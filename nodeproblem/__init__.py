"""Detect node problems from system logs and report them as conditions, events and metrics."""

__version__ = "0.1.0"