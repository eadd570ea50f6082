"""Concrete implementations of the AI and ERP interfaces."""

from .ai.anthropic import AnthropicGateway
from .erp.simulated import SimulatedDynamicsAdapter

__all__ = [
    "AnthropicGateway",
    "SimulatedDynamicsAdapter",
]
