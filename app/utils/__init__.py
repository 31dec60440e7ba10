"""Utility functions."""

from app.utils.time import add_minutes, combine_utc, today, utc_now

__all__ = ["utc_now", "today", "add_minutes", "combine_utc"]
