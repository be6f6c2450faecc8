# backend/cadence/routes/__init__.py
"""HTTP routes for the booking API."""
