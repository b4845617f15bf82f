"""Learning signal ingestion and decision-event feed service."""

__version__ = "0.1.0"
