"""leavedesk — leave lifecycle and balance-accounting backend."""

__version__ = "1.0.0"
