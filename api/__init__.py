"""
API Package for Status Monitor

aiohttp server exposing check history, statistics, the scheduler
control surface and the live Server-Sent-Events stream.
"""

from api.server import ApiServer

__all__ = [
    "ApiServer"
]
