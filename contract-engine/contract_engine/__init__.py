"""Consumer-driven contract testing: record, persist and verify HTTP interactions."""

__version__ = "0.1.0"
