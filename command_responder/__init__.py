"""Alertmanager webhook receiver that runs local or SSH commands per alert."""

__version__ = "0.1.0"
