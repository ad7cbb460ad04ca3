"""
Input registry for building inputs from configuration.

This module provides a central registry mapping an input type name to the
factory that builds the input from its raw configuration mapping.
"""

from typing import Any, Callable, Dict, Optional

from logship.core.exceptions import UnknownInputTypeError
from .base import InputSource


InputFactory = Callable[[Dict[str, Any]], InputSource]


class InputRegistry:
    """
    Central registry of input types.
    """

    def __init__(self):
        """Initialize the input registry."""
        self._factories: Dict[str, InputFactory] = {}

    def register(self, input_type: str, factory: InputFactory):
        """
        Register an input factory.

        Args:
            input_type: The type name used in configuration
            factory: Callable building the input from its raw mapping
        """
        self._factories[input_type] = factory

    def create(self, raw: Dict[str, Any]) -> InputSource:
        """
        Build an input from its raw configuration mapping.

        Args:
            raw: Input configuration; must contain a 'type' key

        Returns:
            The configured input

        Raises:
            UnknownInputTypeError: If the type is not registered
            ConfigurationError: If the factory rejects the configuration
        """
        input_type = raw.get("type", "")
        if input_type not in self._factories:
            raise UnknownInputTypeError(input_type)
        return self._factories[input_type](raw)

    def get_registered_types(self) -> list[str]:
        """Get list of registered input types."""
        return list(self._factories.keys())

    def is_registered(self, input_type: str) -> bool:
        """Check if an input type is registered."""
        return input_type in self._factories


# Global registry instance
_input_registry: Optional[InputRegistry] = None


def get_input_registry() -> InputRegistry:
    """Get the global input registry instance."""
    global _input_registry
    if _input_registry is None:
        _input_registry = InputRegistry()
        _register_default_inputs(_input_registry)
    return _input_registry


def _register_default_inputs(registry: InputRegistry):
    """Register default inputs."""
    # Import here to avoid circular imports
    from .docker import DockerInput

    registry.register("docker", DockerInput.from_config)
