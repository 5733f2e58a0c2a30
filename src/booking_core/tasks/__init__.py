"""Celery tasks for the periodic booking sweeps."""
