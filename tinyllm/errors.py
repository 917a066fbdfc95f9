"""
Exception Types for TinyLLM

Every failure the numeric engine can report derives from TinyLLMError, so a
driver can catch the whole family in one place. Each subclass also inherits
from the matching built-in exception, so callers that only know about
ValueError / IndexError / OSError keep working.

Classes:
    TinyLLMError: Base class for all TinyLLM failures
    ShapeError: Tensor rank or dimensions do not fit the operation
    TokenRangeError: Token id outside the model vocabulary
    CheckpointError: Checkpoint file missing, truncated or corrupt
"""


class TinyLLMError(Exception):
    """Base class for all errors raised by the tinyllm package."""


class ShapeError(TinyLLMError, ValueError):
    """
    Raised when a tensor has the wrong rank or incompatible dimensions.

    Examples:
        - Constructing a tensor with a non-positive dimension
        - Calling a 2D accessor on a 1D tensor
        - Multiplying (m, k) by (j, n) with k != j
    """


class TokenRangeError(TinyLLMError, IndexError):
    """Raised when a token id is outside [0, vocab_size)."""

    def __init__(self, token_id: int, vocab_size: int):
        self.token_id = token_id
        self.vocab_size = vocab_size
        super().__init__(
            f"Token id {token_id} out of range [0, {vocab_size})"
        )


class CheckpointError(TinyLLMError, OSError):
    """Raised when a checkpoint cannot be read back into a model."""
