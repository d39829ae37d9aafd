"""Balance backend: recurring-transaction scheduling and generation engine."""

__version__ = "0.1.0"
