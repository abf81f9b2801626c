# backend/household_tracker/schemas/__init__.py
"""Pydantic request/response schemas for the API layer."""
