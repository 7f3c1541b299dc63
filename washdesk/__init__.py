"""Laundry booking, billing and back-office web application."""

__version__ = "1.0.0"
