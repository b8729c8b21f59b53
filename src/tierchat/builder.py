"""ChatEngineBuilder for wiring all chat components.

This factory handles tier selection, artifact resolution, model loading and
dependency injection, keeping ChatOrchestrator thin and focused on
orchestration.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional, Union

import yaml

from .archive import ChatArchive
from .conversation import ChatOrchestrator
from .embedder import OnnxEmbedder
from .errors import ConfigError
from .generator import GenerationConfig, GreedyGenerator
from .log import setup_file_logger
from .memory_store import VectorMemoryStore
from .model_locator import ModelConfig, ModelLocator, ModelTask
from .runtime import DEFAULT_PROVIDERS, load_session
from .session import DEFAULT_MAX_HISTORY, DEFAULT_SESSION_ID, SessionRegistry
from .tier import Tier, TierSelector
from .tokenizer import HFTokenizer

logger = logging.getLogger(__name__)


@dataclass
class ChatConfig:
    """Unified configuration for all chat components.

    Attributes:
        models_dir: Base directory with one subdirectory per tier.
        tier: Tier name to force ("micro" ... "macro"); None detects it.
        task: Task the language model is loaded for.
        providers: Preferred execution providers, most preferred first.
        optimization_level: onnxruntime graph optimization level.
        eos_token: Explicit end-of-sequence token string.
        max_history: Messages kept per session.
        default_session_id: Session used when the caller gives none.
        top_k: Memories retrieved per turn.
        max_tokens: Generation budget per turn.
        stop_on_newline: Stop generation at the first newline.
        max_seconds: Wall-clock bound per generation (None = unbounded).
        archive_path: DuckDB file to restore state from (None = no archive).
        log_file: Log file path (None = no file logging).
        log_level: Level for the package logger.
    """

    # Models
    models_dir: str = "models"
    tier: Optional[str] = None
    task: str = "chat"
    providers: list[str] = field(default_factory=lambda: list(DEFAULT_PROVIDERS))
    optimization_level: str = "all"
    eos_token: Optional[str] = None

    # Sessions
    max_history: int = DEFAULT_MAX_HISTORY
    default_session_id: str = DEFAULT_SESSION_ID

    # Retrieval and generation
    top_k: int = 2
    max_tokens: int = 512
    stop_on_newline: bool = True
    max_seconds: Optional[float] = None

    # Persistence and logging
    archive_path: Optional[str] = None
    log_file: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate fields whose wrong type would otherwise fail silently."""
        if not isinstance(self.providers, (list, tuple)) or not all(
            isinstance(p, str) for p in self.providers
        ):
            raise ConfigError(
                f"providers must be a list of provider names, got {self.providers!r}"
            )
        self.providers = list(self.providers)

    @classmethod
    def from_dict(cls, data: dict) -> "ChatConfig":
        """Build a config from a mapping, rejecting unknown keys.

        Raises:
            ConfigError: If the mapping has keys that are not config fields.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ChatConfig":
        """Load a config from a YAML file.

        An empty file yields the defaults.

        Raises:
            ConfigError: If the file is missing, unparsable or not a mapping.
        """
        path = Path(path)
        try:
            content = yaml.safe_load(path.read_text())
        except OSError as e:
            raise ConfigError(f"Cannot read config '{path}': {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in '{path}': {e}") from e

        if content is None:
            return cls()
        if not isinstance(content, dict):
            raise ConfigError(f"Config '{path}' must be a mapping, got {type(content).__name__}")
        return cls.from_dict(content)


class ChatEngineBuilder:
    """Fluent builder for creating a loaded ChatOrchestrator.

    Example:
        >>> engine = (
        ...     ChatEngineBuilder()
        ...     .with_models_dir("models")
        ...     .with_tier("small")
        ...     .build()
        ... )

        >>> # Or use the convenience function
        >>> from tierchat import create_chat_engine
        >>> engine = create_chat_engine(models_dir="models")
    """

    def __init__(self, config: Optional[ChatConfig] = None):
        """Initialize builder with optional unified configuration.

        Args:
            config: Unified configuration. Uses defaults if None.
        """
        self.config = config or ChatConfig()
        self._memory: Optional[VectorMemoryStore] = None
        self._sessions: Optional[SessionRegistry] = None
        self._archive: Optional[ChatArchive] = None
        self._locator: Optional[ModelLocator] = None

    def with_models_dir(self, path: Union[str, Path]) -> "ChatEngineBuilder":
        self.config.models_dir = str(path)
        return self

    def with_tier(self, tier: Union[str, Tier, None]) -> "ChatEngineBuilder":
        """Force a tier instead of detecting it (None restores detection)."""
        self.config.tier = tier.value if isinstance(tier, Tier) else tier
        return self

    def with_task(self, task: Union[str, ModelTask]) -> "ChatEngineBuilder":
        self.config.task = task.value if isinstance(task, ModelTask) else task
        return self

    def with_locator(self, locator: ModelLocator) -> "ChatEngineBuilder":
        """Use a custom (tier, task) table instead of the default one."""
        self._locator = locator
        return self

    def with_existing_memory(self, memory: VectorMemoryStore) -> "ChatEngineBuilder":
        """Share an existing memory store with the new engine."""
        self._memory = memory
        return self

    def with_existing_sessions(self, sessions: SessionRegistry) -> "ChatEngineBuilder":
        """Share an existing session registry with the new engine."""
        self._sessions = sessions
        return self

    def with_archive(self, archive: ChatArchive) -> "ChatEngineBuilder":
        """Restore sessions and memory from an archive when building."""
        self._archive = archive
        return self

    def select_tier(self) -> Tier:
        """Resolve the configured tier, detecting it if none is set."""
        override = Tier.parse(self.config.tier) if self.config.tier is not None else None
        return TierSelector(override=override).detect()

    def resolve_models(self) -> ModelConfig:
        """Resolve artifact paths for the selected tier and configured task."""
        locator = self._locator or ModelLocator(self.config.models_dir)
        return locator.resolve(self.select_tier(), ModelTask.parse(self.config.task))

    def build(self) -> ChatOrchestrator:
        """Load all models and return a wired ChatOrchestrator.

        Returns:
            Ready-to-use ChatOrchestrator.

        Raises:
            ConfigError: If the configuration is invalid.
            ModelLoadError: If any artifact cannot be loaded; no partially
                initialized engine is returned.
            TokenizationError: If the tokenizer artifact is malformed.
        """
        config = self.config
        if config.log_file:
            setup_file_logger(config.log_file, config.log_level)

        models = self.resolve_models()
        missing = models.missing()
        if missing:
            logger.warning("Missing model artifacts: %s", ", ".join(str(p) for p in missing))

        tokenizer = HFTokenizer.from_file(models.tokenizer_path, eos_token=config.eos_token)
        chat_graph = load_session(
            models.chat_model_path, config.providers, config.optimization_level
        )
        embedding_graph = load_session(
            models.embedding_model_path, config.providers, config.optimization_level
        )

        generator = GreedyGenerator(
            chat_graph,
            tokenizer,
            GenerationConfig(
                max_tokens=config.max_tokens,
                stop_on_newline=config.stop_on_newline,
                max_seconds=config.max_seconds,
            ),
        )
        embedder = OnnxEmbedder(embedding_graph, tokenizer)

        memory = self._memory if self._memory is not None else VectorMemoryStore()
        sessions = self._sessions
        if sessions is None:
            sessions = SessionRegistry(
                max_history=config.max_history,
                default_session_id=config.default_session_id,
            )

        if self._archive is not None:
            self._archive.restore(sessions, memory)
        elif config.archive_path:
            with ChatArchive(config.archive_path) as archive:
                archive.restore(sessions, memory)

        logger.info(
            "Chat engine ready: chat=%s [%s], embedding=%s [%s]",
            models.chat_model_path.name,
            chat_graph.provider,
            models.embedding_model_path.name,
            embedding_graph.provider,
        )
        return ChatOrchestrator(
            generator=generator,
            embedder=embedder,
            memory=memory,
            sessions=sessions,
            top_k=config.top_k,
            max_tokens=config.max_tokens,
        )


def create_chat_engine(
    models_dir: Optional[Union[str, Path]] = None,
    config_path: Optional[Union[str, Path]] = None,
    **kwargs,
) -> ChatOrchestrator:
    """Convenience function to create a chat engine with defaults.

    For more control, use ChatEngineBuilder directly.

    Args:
        models_dir: Base directory with one subdirectory per tier (overrides
            the config file when given).
        config_path: Optional YAML config; keyword arguments override it.
        **kwargs: Additional ChatConfig fields.

    Returns:
        Configured ChatOrchestrator.

    Example:
        >>> engine = create_chat_engine("models", tier="small", top_k=3)
        >>> engine.chat("What did I say earlier?", session_id="s1")
    """
    config = ChatConfig.from_yaml(config_path) if config_path is not None else ChatConfig()
    overrides = dict(kwargs)
    if models_dir is not None:
        overrides["models_dir"] = str(models_dir)
    config = ChatConfig.from_dict({**asdict(config), **overrides})
    return ChatEngineBuilder(config).build()
