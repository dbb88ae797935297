"""Pytest configuration shared by every test package."""

from hypothesis import settings

# Pipeline properties run real event loops with sleeps; wall time varies.
settings.register_profile("no_deadline", deadline=None)
settings.load_profile("no_deadline")
