"""
SocialBridge connectors package.

Keep this module lightweight: only the error primitives are exported at
import time. Other modules should be imported directly
(e.g., `from connectors.x_post import post_tweet`).
"""

from .errors import ConnectorError, ErrorCode, get_http_status

__all__ = ["ConnectorError", "ErrorCode", "get_http_status"]
