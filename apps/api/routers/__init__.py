"""Routers package."""

from . import (
    health,
    auth,
    movies,
    series,
    media,
    payments,
    access,
)
