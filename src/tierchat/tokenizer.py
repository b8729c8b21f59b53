"""Tokenizer adapter over a HuggingFace ``tokenizer.json`` artifact."""

import logging
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from .errors import ModelLoadError, TokenizationError

logger = logging.getLogger(__name__)

# Used when the vocabulary has no recognizable end-of-sequence entry
FALLBACK_EOS_ID = 2

EOS_CANDIDATES = ("</s>", "<|endoftext|>", "<|im_end|>", "<|eot_id|>")


class TextTokenizer(Protocol):
    """Protocol for the tokenizer used by generation and embedding."""

    def encode(self, text: str) -> list[int]:
        ...

    def decode(self, ids: Sequence[int]) -> str:
        ...

    def eos_id(self) -> int:
        ...


class HFTokenizer:
    """Wraps ``transformers.PreTrainedTokenizerFast`` loaded from a file.

    Stateless after loading, so one instance is shared read-only by the
    generator and the embedder.
    """

    def __init__(self, tokenizer, eos_token: Optional[str] = None):
        """Initialize with an already-loaded tokenizer.

        Args:
            tokenizer: A PreTrainedTokenizerFast (or compatible) instance.
            eos_token: Explicit end-of-sequence token string, if known.
        """
        self.tokenizer = tokenizer
        self.eos_token = eos_token
        self._eos_id: Optional[int] = None

    @classmethod
    def from_file(
        cls, path: Union[str, Path], eos_token: Optional[str] = None
    ) -> "HFTokenizer":
        """Load a tokenizer from a ``tokenizer.json`` artifact.

        Args:
            path: Path to the tokenizer artifact.
            eos_token: Explicit end-of-sequence token string, if known.

        Returns:
            Loaded HFTokenizer.

        Raises:
            ModelLoadError: If the artifact does not exist.
            TokenizationError: If the artifact cannot be parsed.
        """
        from transformers import PreTrainedTokenizerFast

        path = Path(path)
        if not path.is_file():
            raise ModelLoadError(path, "tokenizer artifact not found")

        try:
            tokenizer = PreTrainedTokenizerFast(tokenizer_file=str(path))
        except Exception as e:
            raise TokenizationError(f"Malformed tokenizer artifact '{path}': {e}") from e

        logger.info("Loaded tokenizer from %s (vocab=%d)", path, len(tokenizer))
        return cls(tokenizer, eos_token=eos_token)

    @property
    def vocab_size(self) -> int:
        """Vocabulary size including added tokens."""
        return len(self.tokenizer)

    def encode(self, text: str) -> list[int]:
        """Encode text to token ids, adding the model's special tokens.

        Raises:
            TokenizationError: If the text cannot be encoded.
        """
        if not isinstance(text, str):
            raise TokenizationError(f"Expected str, got {type(text).__name__}")
        try:
            return list(self.tokenizer.encode(text, add_special_tokens=True))
        except Exception as e:
            raise TokenizationError(f"Failed to encode text: {e}") from e

    def decode(self, ids: Sequence[int]) -> str:
        """Decode token ids to text, skipping special tokens.

        Raises:
            TokenizationError: If the ids cannot be decoded.
        """
        try:
            return self.tokenizer.decode([int(i) for i in ids], skip_special_tokens=True)
        except Exception as e:
            raise TokenizationError(f"Failed to decode ids {list(ids)[:8]}: {e}") from e

    def eos_id(self) -> int:
        """End-of-sequence token id.

        Resolution order: the configured eos_token, the tokenizer's own eos
        token, well-known EOS entries in the vocabulary, then FALLBACK_EOS_ID.
        Never raises.
        """
        if self._eos_id is None:
            self._eos_id = self._resolve_eos_id()
        return self._eos_id

    def _resolve_eos_id(self) -> int:
        vocab = self.tokenizer.get_vocab()

        if self.eos_token is not None and self.eos_token in vocab:
            return vocab[self.eos_token]

        own_id = getattr(self.tokenizer, "eos_token_id", None)
        if own_id is not None:
            return int(own_id)

        for token in EOS_CANDIDATES:
            if token in vocab:
                return vocab[token]

        logger.warning(
            "No end-of-sequence token in vocabulary; using fallback id %d",
            FALLBACK_EOS_ID,
        )
        return FALLBACK_EOS_ID
