"""replrelay: a reconnecting pass-through TCP relay for interactive socket services."""

__version__ = "0.1.0"
