"""Maps (tier, task) to concrete model and tokenizer artifact paths.

Resolution is a pure table lookup: no filesystem access happens here.
Whether the files exist is checked when the runtime commits the graph.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Union

from .errors import ConfigError
from .tier import Tier

EMBEDDING_FILENAME = "embedding.onnx"
TOKENIZER_FILENAME = "tokenizer.json"


class ModelTask(Enum):
    """Kind of work the language model is loaded for."""

    CHAT = "chat"
    PREDICT = "predict"
    CATEGORISE = "categorise"

    @classmethod
    def parse(cls, name: str) -> "ModelTask":
        """Parse a case-insensitive task name.

        Raises:
            ConfigError: If the name is not a known task.
        """
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ConfigError(f"Unknown task '{name}' (expected one of: {valid})") from None


# Lower tiers share one model file across tasks to conserve memory.
# PREDICT and CATEGORISE always share a file within a tier.
DEFAULT_MODEL_TABLE: dict[tuple[Tier, ModelTask], str] = {
    (Tier.MICRO, ModelTask.CHAT): "qwen2-0.5b-instruct.onnx",
    (Tier.MICRO, ModelTask.PREDICT): "qwen2-0.5b-instruct.onnx",
    (Tier.MICRO, ModelTask.CATEGORISE): "qwen2-0.5b-instruct.onnx",
    (Tier.SMALL, ModelTask.CHAT): "phi-3-mini-instruct.onnx",
    (Tier.SMALL, ModelTask.PREDICT): "qwen2-1.5b-instruct.onnx",
    (Tier.SMALL, ModelTask.CATEGORISE): "qwen2-1.5b-instruct.onnx",
    (Tier.MEDIUM, ModelTask.CHAT): "llama-3-8b-instruct.onnx",
    (Tier.MEDIUM, ModelTask.PREDICT): "qwen2-7b-instruct.onnx",
    (Tier.MEDIUM, ModelTask.CATEGORISE): "qwen2-7b-instruct.onnx",
    (Tier.LARGE, ModelTask.CHAT): "llama-3-8b-instruct.onnx",
    (Tier.LARGE, ModelTask.PREDICT): "qwen2-7b-instruct.onnx",
    (Tier.LARGE, ModelTask.CATEGORISE): "qwen2-7b-instruct.onnx",
    (Tier.MACRO, ModelTask.CHAT): "llama-3-8b-instruct.onnx",
    (Tier.MACRO, ModelTask.PREDICT): "qwen2-7b-instruct.onnx",
    (Tier.MACRO, ModelTask.CATEGORISE): "qwen2-7b-instruct.onnx",
}


@dataclass(frozen=True)
class ModelConfig:
    """Resolved artifact paths for one engine.

    Attributes:
        chat_model_path: Language model graph for the selected task.
        embedding_model_path: Embedding graph (shared by all tasks in a tier).
        tokenizer_path: Tokenizer artifact (shared by all tasks in a tier).
    """

    chat_model_path: Path
    embedding_model_path: Path
    tokenizer_path: Path

    def missing(self) -> list[Path]:
        """List the artifact paths that do not exist on disk."""
        return [
            p
            for p in (self.chat_model_path, self.embedding_model_path, self.tokenizer_path)
            if not p.exists()
        ]


class ModelLocator:
    """Resolves model artifact paths from an exhaustive (tier, task) table.

    Example:
        >>> locator = ModelLocator("models")
        >>> config = locator.resolve(Tier.SMALL, ModelTask.CHAT)
        >>> config.chat_model_path
        PosixPath('models/small/phi-3-mini-instruct.onnx')
    """

    def __init__(
        self,
        base_dir: Union[str, Path] = "models",
        table: Optional[Mapping[tuple[Tier, ModelTask], str]] = None,
    ):
        """Initialize the locator and validate the table.

        Args:
            base_dir: Directory holding one subdirectory per tier.
            table: (tier, task) -> filename mapping. Defaults to
                DEFAULT_MODEL_TABLE.

        Raises:
            ConfigError: If any (tier, task) combination is missing.
        """
        self.base_dir = Path(base_dir)
        self.table = dict(table if table is not None else DEFAULT_MODEL_TABLE)
        self._validate()

    def _validate(self) -> None:
        missing = [
            f"{tier.value}/{task.value}"
            for tier in Tier
            for task in ModelTask
            if not self.table.get((tier, task))
        ]
        if missing:
            raise ConfigError(f"Model table has no entry for: {', '.join(missing)}")

    def tier_dir(self, tier: Tier) -> Path:
        """Directory holding the artifacts for a tier."""
        return self.base_dir / tier.value

    def resolve(self, tier: Tier, task: ModelTask = ModelTask.CHAT) -> ModelConfig:
        """Resolve the artifact paths for a tier and task.

        Args:
            tier: Capability tier.
            task: Task the language model is loaded for.

        Returns:
            ModelConfig with chat, embedding and tokenizer paths.
        """
        tier_dir = self.tier_dir(tier)
        return ModelConfig(
            chat_model_path=tier_dir / self.table[(tier, task)],
            embedding_model_path=tier_dir / EMBEDDING_FILENAME,
            tokenizer_path=tier_dir / TOKENIZER_FILENAME,
        )
