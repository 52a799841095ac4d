"""
tests/conftest.py — Shared test setup.

Imports every model module so SQLAlchemy can resolve the string-based
relationship targets ("User", "Settlement", ...) when a unit test constructs
an ORM object without going through create_app().
"""

from splitease.app.models import (  # noqa: F401
    expense,
    group,
    membership,
    payment_request,
    settlement,
    split,
    user,
)
