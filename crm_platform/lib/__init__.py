"""
Shared infrastructure: settings, logging, database and metrics.
"""
