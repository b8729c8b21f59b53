"""Greedy autoregressive text generation over an ONNX chat graph.

The loop re-submits the full, growing token sequence every step (there is
no key-value cache carried between steps), picks the highest logit at the
final position, and stops on EOS, on the token budget, or when the output
ends with a newline.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

import numpy as np

from .errors import GenerationCancelled, GenerationTimeout, TokenizationError
from .runtime import GraphRunner, require_output, token_inputs
from .tokenizer import TextTokenizer

logger = logging.getLogger(__name__)


class GenerationState(Enum):
    SEEDING = "seeding"
    STEPPING = "stepping"
    STOPPED = "stopped"


class StopReason(Enum):
    EOS = "eos"
    MAX_TOKENS = "max_tokens"
    NEWLINE = "newline"


@dataclass
class GenerationConfig:
    """Configuration for the generation loop.

    Attributes:
        max_tokens: Maximum decoding steps per call.
        stop_on_newline: Stop once the generated text ends with a newline.
        max_seconds: Wall-clock bound per call (None = unbounded).
    """

    max_tokens: int = 512
    stop_on_newline: bool = True
    max_seconds: Optional[float] = None


@dataclass
class GenerationResult:
    """Outcome of one generation call."""

    text: str = ""
    token_ids: list[int] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    steps: int = 0
    state: GenerationState = GenerationState.SEEDING


def greedy_token(logits_row: np.ndarray) -> int:
    """Select the highest-logit token id.

    Ties go to the first maximum. NaN never wins; a row with no finite
    maximum selects id 0.
    """
    row = np.asarray(logits_row, dtype=np.float32)
    row = np.where(np.isnan(row), -np.inf, row)
    return int(np.argmax(row))


class GreedyGenerator:
    """Deterministic greedy decoder.

    Holds no per-call state, so one instance can serve concurrent turns;
    the graph handle serializes its own runs.

    Example:
        >>> generator = GreedyGenerator(chat_session, tokenizer)
        >>> generator.generate("user: hello\\n", max_tokens=32)
        'Hi there!\\n'
    """

    def __init__(
        self,
        graph: GraphRunner,
        tokenizer: TextTokenizer,
        config: Optional[GenerationConfig] = None,
    ):
        """Initialize the generator.

        Args:
            graph: Chat graph producing `logits` [1, seq_len, vocab].
            tokenizer: Tokenizer shared with the embedder.
            config: Generation configuration (uses defaults if None).
        """
        self.graph = graph
        self.tokenizer = tokenizer
        self.config = config or GenerationConfig()

    def generate(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Generate a continuation of the prompt.

        Args:
            prompt: Full prompt text.
            max_tokens: Step budget (defaults to config.max_tokens).

        Returns:
            Generated text (may be empty).
        """
        return self.generate_with_details(prompt, max_tokens).text

    def generate_with_details(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> GenerationResult:
        """Generate and report how and why the loop stopped.

        Args:
            prompt: Full prompt text.
            max_tokens: Step budget (defaults to config.max_tokens).
            cancel_event: Checked between steps; when set, generation aborts.

        Returns:
            GenerationResult with text, generated ids, stop reason and steps.
        """
        result = GenerationResult()
        for _ in self._decode(prompt, max_tokens, cancel_event, result):
            pass
        return result

    def stream(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[str]:
        """Yield decoded pieces as they are generated.

        Args:
            prompt: Full prompt text.
            max_tokens: Step budget (defaults to config.max_tokens).
            cancel_event: Checked between steps; when set, generation aborts.

        Yields:
            Decoded text for each generated token.
        """
        yield from self._decode(prompt, max_tokens, cancel_event, GenerationResult())

    def _decode(
        self,
        prompt: str,
        max_tokens: Optional[int],
        cancel_event: Optional[threading.Event],
        result: GenerationResult,
    ) -> Iterator[str]:
        """Run the SEEDING -> STEPPING -> STOPPED state machine.

        Progress is recorded on ``result`` as it happens; each appended
        piece is also yielded.
        """
        budget = self.config.max_tokens if max_tokens is None else max_tokens
        deadline = None
        if self.config.max_seconds is not None:
            deadline = time.monotonic() + self.config.max_seconds

        tokens = list(self.tokenizer.encode(prompt))
        if not tokens:
            result.state = GenerationState.STOPPED
            raise TokenizationError("Prompt produced no tokens")
        eos_id = self.tokenizer.eos_id()

        result.state = GenerationState.STEPPING
        try:
            while result.steps < budget:
                if cancel_event is not None and cancel_event.is_set():
                    raise GenerationCancelled(
                        f"Generation cancelled after {result.steps} steps",
                        result.text,
                        result.steps,
                    )
                if deadline is not None and time.monotonic() > deadline:
                    raise GenerationTimeout(
                        f"Generation exceeded {self.config.max_seconds}s "
                        f"after {result.steps} steps",
                        result.text,
                        result.steps,
                    )

                seq_len = len(tokens)
                outputs = self.graph.run(token_inputs(tokens), ["logits"])
                logits = require_output(outputs, "logits", seq_len)
                next_id = greedy_token(logits[0, seq_len - 1, :])
                result.steps += 1

                if next_id == eos_id:
                    result.stop_reason = StopReason.EOS
                    break

                tokens.append(next_id)
                piece = self.tokenizer.decode([next_id])
                result.token_ids.append(next_id)
                result.text += piece
                yield piece

                if self.config.stop_on_newline and result.text.endswith("\n"):
                    result.stop_reason = StopReason.NEWLINE
                    break
            else:
                result.stop_reason = StopReason.MAX_TOKENS
        finally:
            result.state = GenerationState.STOPPED

        logger.debug(
            "Generation stopped (%s) after %d steps, %d tokens",
            result.stop_reason.value,
            result.steps,
            len(result.token_ids),
        )
