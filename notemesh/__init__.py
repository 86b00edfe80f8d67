"""notemesh: multi-replica note sharing with session-scoped consistency."""

__version__ = "0.1.0"
