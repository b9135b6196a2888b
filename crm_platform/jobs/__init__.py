"""
Background jobs run by the in-process scheduler.
"""
