"""Adapters for external services: issue tracker, notifiers, audit log."""
