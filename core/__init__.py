"""
Gate Core

Central module exports for the traffic gate risk decision engine.
"""

from core.orchestrator import GateOrchestrator

__all__ = [
    "GateOrchestrator",
]
