"""AutoPM seven-stage product workflow service."""

__version__ = "0.1.0"
