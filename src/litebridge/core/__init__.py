"""litebridge core -- values, errors, settings, logging and engine state.

Everything in ``litebridge.core`` is free of threads and event loops; the
bridge modules one level up build on it.
"""
