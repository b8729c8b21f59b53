"""Embedding extraction by mean-pooling an ONNX encoder's hidden states."""

from typing import Optional

import numpy as np

from .errors import TokenizationError
from .runtime import GraphRunner, require_output, token_inputs
from .tokenizer import TextTokenizer


class OnnxEmbedder:
    """Embeds text with a single run of the embedding graph.

    The vector is the plain mean of `last_hidden_state` over the sequence
    axis. Every position counts, including padding if any were present;
    single unpadded requests never contain padding.
    """

    def __init__(self, graph: GraphRunner, tokenizer: TextTokenizer):
        """Initialize the embedder.

        Args:
            graph: Embedding graph producing `last_hidden_state`
                [1, seq_len, hidden_size].
            tokenizer: Tokenizer shared with the generator.
        """
        self.graph = graph
        self.tokenizer = tokenizer
        self.dim: Optional[int] = None

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text string.

        Args:
            text: Text to embed.

        Returns:
            float32 vector of shape (hidden_size,).

        Raises:
            TokenizationError: If the text cannot be tokenized or yields no tokens.
            InferenceError: If the graph violates its output contract.
        """
        tokens = self.tokenizer.encode(text)
        if not tokens:
            raise TokenizationError("Text produced no tokens")

        outputs = self.graph.run(token_inputs(tokens), ["last_hidden_state"])
        hidden = require_output(outputs, "last_hidden_state", len(tokens))

        embedding = hidden[0].mean(axis=0, dtype=np.float32)
        self.dim = int(embedding.shape[0])
        return embedding

    def embed_batch(self, texts: list[str]) -> list[np.ndarray]:
        """Embed multiple texts, one graph run each.

        Args:
            texts: Texts to embed.

        Returns:
            List of float32 vectors in input order.
        """
        return [self.embed(text) for text in texts]
