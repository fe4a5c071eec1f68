"""
jobprobe/connectors package marker.
"""

from jobprobe.connectors.parser_api import ParserApiClient, ParserApiError

__all__ = ["ParserApiClient", "ParserApiError"]
