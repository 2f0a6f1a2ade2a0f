"""
Gate Core Processors

Public exports for request enrichment.
"""

from core.processors.context import (
    RequestContextProcessor,
    is_automation_user_agent,
    resolve_client_ip,
)

__all__ = [
    "RequestContextProcessor",
    "is_automation_user_agent",
    "resolve_client_ip",
]
