"""
Pipeline inputs.

This package contains the input interface, the registry that builds inputs
from configuration, and the input implementations.
"""

from .base import InputSource, LogEvent
from .registry import InputRegistry, get_input_registry

__all__ = [
    'InputSource',
    'LogEvent',
    'InputRegistry',
    'get_input_registry',
]
