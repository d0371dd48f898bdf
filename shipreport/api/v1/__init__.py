"""
API v1 routers.
"""

from shipreport.api.v1 import health, status

__all__ = ["health", "status"]
