"""Revoc: conversations that remember the people, events and tasks in them."""

__version__ = "0.1.0"
