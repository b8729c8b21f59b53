"""Exception hierarchy for the tierchat pipeline.

Exception Hierarchy:
    TierChatError (base)
    ├── TierDetectionFailure - Host memory could not be read (non-fatal)
    ├── ConfigError - Invalid configuration value or file
    ├── ModelLoadError - A model or tokenizer artifact could not be committed
    ├── TokenizationError - Text could not be encoded or decoded
    ├── InferenceError - Graph contract violation or backend failure
    └── GenerationCancelled - Generation stopped by a cancel signal
        └── GenerationTimeout - Generation exceeded its wall-clock bound

Session lookup never fails (sessions are created lazily), so there is no
session-not-found error.
"""

from typing import Optional


class TierChatError(Exception):
    """Base class for all tierchat errors."""

    def __init__(self, message: str = "An unspecified tierchat error occurred."):
        super().__init__(message)
        self.message = message


class TierDetectionFailure(TierChatError):
    """Raised internally when total system memory cannot be measured.

    Never escapes tier detection: the selector logs it and falls back to
    the smallest tier.
    """


class ConfigError(TierChatError):
    """Raised for invalid configuration files or values."""


class ModelLoadError(TierChatError):
    """Raised when a model graph or tokenizer cannot be loaded.

    Attributes:
        path: The artifact that failed to load.
        attempts: Provider attempts made before giving up (may be empty).
    """

    def __init__(self, path, message: str, attempts: Optional[list] = None):
        self.path = path
        self.attempts = list(attempts or [])
        super().__init__(f"Failed to load '{path}': {message}")


class TokenizationError(TierChatError):
    """Raised when the tokenizer cannot process the input."""


class InferenceError(TierChatError):
    """Raised on tensor name/shape mismatch or backend execution failure."""


class GenerationCancelled(TierChatError):
    """Raised when generation is stopped by a cooperative cancel signal.

    Attributes:
        partial_text: Text decoded before the stop.
        steps: Generation steps completed before the stop.
    """

    def __init__(self, message: str, partial_text: str = "", steps: int = 0):
        super().__init__(message)
        self.partial_text = partial_text
        self.steps = steps


class GenerationTimeout(GenerationCancelled):
    """Raised when generation exceeds its configured wall-clock bound."""
