"""tierchat: resource-tier-aware local chat inference with retrieval memory.

This package selects language and embedding models sized to the host's
memory, runs greedy generation and embedding extraction on ONNX Runtime,
keeps bounded per-session histories, and augments every chat turn with
cosine-similarity retrieval from an append-only vector memory.

Key components:
- Tier/TierSelector: Memory-based capability tier detection
- ModelLocator/ModelConfig: (tier, task) -> artifact paths
- HFTokenizer: tokenizer.json adapter with EOS lookup
- load_session/InferenceSession: Provider negotiation and named-tensor runs
- GreedyGenerator: Autoregressive greedy decoding loop
- OnnxEmbedder: Mean-pooled embeddings
- VectorMemoryStore: Append-only top-k cosine retrieval
- SessionRegistry/ChatSession: Bounded conversation windows
- ChatOrchestrator: Retrieve -> augment -> generate -> persist
- ChatEngineBuilder/ChatConfig: Loading and wiring from configuration
- ChatArchive: DuckDB snapshots of sessions and memory

Example usage:
    from tierchat import create_chat_engine

    engine = create_chat_engine(models_dir="models")
    engine.chat("Hello! My name is Alice.", session_id="s1")
    engine.chat("What's my name?", session_id="s1")
"""

from .archive import ChatArchive
from .builder import ChatConfig, ChatEngineBuilder, create_chat_engine
from .conversation import ChatOrchestrator, build_prompt
from .embedder import OnnxEmbedder
from .errors import (
    ConfigError,
    GenerationCancelled,
    GenerationTimeout,
    InferenceError,
    ModelLoadError,
    TierChatError,
    TierDetectionFailure,
    TokenizationError,
)
from .generator import (
    GenerationConfig,
    GenerationResult,
    GenerationState,
    GreedyGenerator,
    StopReason,
    greedy_token,
)
from .memory_store import MemoryEntry, VectorMemoryStore, cosine_similarity
from .model_locator import ModelConfig, ModelLocator, ModelTask
from .runtime import InferenceSession, ProviderAttempt, load_session
from .session import ChatSession, Message, SessionRegistry
from .tier import Tier, TierSelector, detect, tier_for_memory
from .tokenizer import HFTokenizer

__all__ = [
    # Tier selection
    "Tier",
    "TierSelector",
    "detect",
    "tier_for_memory",
    # Model location
    "ModelTask",
    "ModelConfig",
    "ModelLocator",
    # Tokenizer
    "HFTokenizer",
    # Runtime
    "InferenceSession",
    "ProviderAttempt",
    "load_session",
    # Generation
    "GreedyGenerator",
    "GenerationConfig",
    "GenerationResult",
    "GenerationState",
    "StopReason",
    "greedy_token",
    # Embedding
    "OnnxEmbedder",
    # Memory
    "MemoryEntry",
    "VectorMemoryStore",
    "cosine_similarity",
    # Sessions
    "Message",
    "ChatSession",
    "SessionRegistry",
    # Orchestration
    "ChatOrchestrator",
    "build_prompt",
    # Builder
    "ChatConfig",
    "ChatEngineBuilder",
    "create_chat_engine",
    # Persistence
    "ChatArchive",
    # Errors
    "TierChatError",
    "TierDetectionFailure",
    "ConfigError",
    "ModelLoadError",
    "TokenizationError",
    "InferenceError",
    "GenerationCancelled",
    "GenerationTimeout",
]

__version__ = "0.1.0"
