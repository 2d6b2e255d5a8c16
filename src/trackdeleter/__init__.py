"""trackdeleter - find and safely delete duplicate music tracks."""

__version__ = "0.1.0"
