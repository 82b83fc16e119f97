"""Abstract base for all text-generation providers."""

from abc import ABC, abstractmethod

from src.models import Completion


class GenerationError(Exception):
    """Raised when a provider call fails or returns nothing usable."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all text-generation providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(self, prompt: str, *, json_output: bool = False) -> Completion:
        """Generate a completion for the given prompt.

        Args:
            prompt: The full prompt text to send.
            json_output: Ask the model for a single JSON object.

        Returns:
            Completion with content and metadata.

        Raises:
            GenerationError: On API failure, timeout, or empty response.
        """
        ...
