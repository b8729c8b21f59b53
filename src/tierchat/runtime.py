"""ONNX Runtime adapter: provider negotiation and named-tensor execution.

Loading walks an ordered list of execution providers. Each provider is one
independent attempt; a failed accelerated provider never stops the next one
from being tried, and the CPU provider is the guaranteed baseline. Only a
commit that fails on every provider raises ModelLoadError.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, Union

import numpy as np
import onnxruntime as ort

from .errors import InferenceError, ModelLoadError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS = (
    "CUDAExecutionProvider",
    "CoreMLExecutionProvider",
    "DmlExecutionProvider",
)
BASELINE_PROVIDER = "CPUExecutionProvider"

OPTIMIZATION_LEVELS = {
    "disable": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
    "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
    "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
    "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
}


@dataclass(frozen=True)
class ProviderAttempt:
    """Outcome of trying to commit a graph with one execution provider."""

    provider: str
    succeeded: bool
    reason: Optional[str] = None


class GraphRunner(Protocol):
    """Anything that runs a graph on named tensors (real session or test stub)."""

    def run(
        self,
        named_inputs: Mapping[str, np.ndarray],
        output_names: Optional[Sequence[str]] = None,
    ) -> dict[str, np.ndarray]:
        ...


class InferenceSession:
    """A committed ONNX graph bound to the provider that accepted it.

    A single ``run`` mutates backend execution state, so calls on one handle
    are serialized by the handle's own lock. Independent handles run freely
    in parallel.
    """

    def __init__(
        self,
        session,
        path: Path,
        provider: str,
        attempts: Sequence[ProviderAttempt] = (),
    ):
        """Wrap an already-created ``onnxruntime.InferenceSession``.

        Args:
            session: The committed onnxruntime session.
            path: Model file the session was loaded from.
            provider: Execution provider that committed the graph.
            attempts: Provider attempts made while loading.
        """
        self.session = session
        self.path = Path(path)
        self.provider = provider
        self.attempts = list(attempts)
        self._lock = threading.Lock()
        self._inputs = {arg.name: arg for arg in session.get_inputs()}
        self._outputs = [arg.name for arg in session.get_outputs()]

    @property
    def input_names(self) -> list[str]:
        return list(self._inputs)

    @property
    def output_names(self) -> list[str]:
        return list(self._outputs)

    def run(
        self,
        named_inputs: Mapping[str, np.ndarray],
        output_names: Optional[Sequence[str]] = None,
    ) -> dict[str, np.ndarray]:
        """Run the graph on named tensors.

        Args:
            named_inputs: Input name -> array. Must cover every graph input.
            output_names: Outputs to compute. All outputs if None.

        Returns:
            Output name -> array.

        Raises:
            InferenceError: On missing/unexpected input names, shape
                mismatches, unknown output names, or backend failure.
        """
        self._check_inputs(named_inputs)

        requested = list(output_names) if output_names is not None else list(self._outputs)
        unknown = [name for name in requested if name not in self._outputs]
        if unknown:
            raise InferenceError(
                f"Graph '{self.path.name}' has no output(s) {unknown}; "
                f"available: {self._outputs}"
            )

        feed = {name: np.asarray(value) for name, value in named_inputs.items()}
        try:
            with self._lock:
                results = self.session.run(requested, feed)
        except Exception as e:
            raise InferenceError(f"Execution of '{self.path.name}' failed: {e}") from e

        return dict(zip(requested, results))

    def _check_inputs(self, named_inputs: Mapping[str, np.ndarray]) -> None:
        missing = [name for name in self._inputs if name not in named_inputs]
        if missing:
            raise InferenceError(f"Missing required input(s) {missing} for '{self.path.name}'")

        unexpected = [name for name in named_inputs if name not in self._inputs]
        if unexpected:
            raise InferenceError(f"Unexpected input(s) {unexpected} for '{self.path.name}'")

        for name, arg in self._inputs.items():
            shape = np.shape(named_inputs[name])
            expected = list(arg.shape or [])
            if len(shape) != len(expected):
                raise InferenceError(
                    f"Input '{name}' has rank {len(shape)}, graph expects {expected}"
                )
            for actual, dim in zip(shape, expected):
                # Symbolic or unknown dims (str/None) accept any size
                if isinstance(dim, int) and dim > 0 and actual != dim:
                    raise InferenceError(
                        f"Input '{name}' has shape {list(shape)}, graph expects {expected}"
                    )


def _session_options(optimization_level: str) -> "ort.SessionOptions":
    options = ort.SessionOptions()
    try:
        options.graph_optimization_level = OPTIMIZATION_LEVELS[optimization_level]
    except KeyError:
        raise ValueError(
            f"Unknown optimization level '{optimization_level}' "
            f"(expected one of: {', '.join(OPTIMIZATION_LEVELS)})"
        ) from None
    return options


def _try_provider(path: Path, provider: str, options) -> tuple[object, ProviderAttempt]:
    """Attempt to commit the graph with a single provider."""
    if provider not in ort.get_available_providers():
        return None, ProviderAttempt(provider, False, "not available in this onnxruntime build")

    try:
        session = ort.InferenceSession(str(path), sess_options=options, providers=[provider])
    except Exception as e:
        return None, ProviderAttempt(provider, False, str(e))

    active = list(session.get_providers())
    if provider not in active:
        # onnxruntime fell back silently; treat as a failed attempt
        return None, ProviderAttempt(provider, False, f"session fell back to {active}")
    return session, ProviderAttempt(provider, True)


def load_session(
    path: Union[str, Path],
    providers: Sequence[str] = DEFAULT_PROVIDERS,
    optimization_level: str = "all",
) -> InferenceSession:
    """Commit an ONNX graph, negotiating execution providers in order.

    Args:
        path: Path to the .onnx model file.
        providers: Preferred providers, most preferred first. The CPU
            baseline is always tried last.
        optimization_level: One of "disable", "basic", "extended", "all".

    Returns:
        InferenceSession bound to the first provider that committed.

    Raises:
        ModelLoadError: If the file is missing or no provider, including
            the CPU baseline, can commit the graph.
    """
    path = Path(path)
    if not path.is_file():
        raise ModelLoadError(path, "model file not found")

    options = _session_options(optimization_level)
    order = [p for p in providers if p != BASELINE_PROVIDER] + [BASELINE_PROVIDER]

    attempts: list[ProviderAttempt] = []
    for provider in order:
        session, attempt = _try_provider(path, provider, options)
        attempts.append(attempt)
        logger.debug(
            "Provider %s for %s: %s",
            provider,
            path.name,
            "ok" if attempt.succeeded else attempt.reason,
        )
        if session is not None:
            logger.info("Committed %s with %s", path, provider)
            return InferenceSession(session, path, provider, attempts)

    reasons = "; ".join(f"{a.provider}: {a.reason}" for a in attempts)
    raise ModelLoadError(path, f"no execution provider could commit the graph ({reasons})", attempts)


def token_inputs(token_ids: Sequence[int]) -> dict[str, np.ndarray]:
    """Build ``input_ids`` and an all-ones ``attention_mask``, both int64 [1, n]."""
    input_ids = np.asarray(token_ids, dtype=np.int64).reshape(1, -1)
    return {
        "input_ids": input_ids,
        "attention_mask": np.ones_like(input_ids, dtype=np.int64),
    }


def require_output(
    outputs: Mapping[str, np.ndarray], name: str, seq_len: int
) -> np.ndarray:
    """Fetch a [1, seq_len, d] float output, enforcing the graph contract.

    Args:
        outputs: Result of a graph run.
        name: Expected output name (e.g. "logits", "last_hidden_state").
        seq_len: Length of the submitted token sequence.

    Returns:
        The output as a float32 array of shape (1, seq_len, d).

    Raises:
        InferenceError: If the output is missing or misshapen.
    """
    if name not in outputs:
        raise InferenceError(f"Graph did not return '{name}' (got {sorted(outputs)})")

    value = np.asarray(outputs[name])
    if value.ndim != 3 or value.shape[0] != 1 or value.shape[1] != seq_len or value.shape[2] == 0:
        raise InferenceError(
            f"Output '{name}' has shape {list(value.shape)}, expected [1, {seq_len}, d]"
        )
    return value.astype(np.float32, copy=False)
