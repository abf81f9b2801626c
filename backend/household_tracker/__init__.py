# backend/household_tracker/__init__.py
"""Household Portfolio Tracker backend."""

__version__ = "0.1.0"
