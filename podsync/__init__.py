"""Podsync: keeps a local podcast catalog in step with remote feeds."""

__version__ = "0.1.0"
