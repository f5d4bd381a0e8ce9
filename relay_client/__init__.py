"""Interactive console client for the line relay."""

from .client import Client

__all__ = ['Client']
