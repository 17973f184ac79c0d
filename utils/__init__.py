"""
Utilities Package for Status Monitor

Logging setup and shared helpers (time, strings, background tasks).
"""
