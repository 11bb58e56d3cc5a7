"""hostguard - unattended incident response for a single host."""

__version__ = "0.1.0"
