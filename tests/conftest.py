"""Shared fixtures: byte-level stub tokenizer, scripted graphs and tiny ONNX models."""

from pathlib import Path

import numpy as np
import pytest

BYTE_VOCAB = 256
STUB_EOS_ID = 2


class ByteTokenizer:
    """One token per UTF-8 byte. Empty text encodes to no tokens."""

    def __init__(self, eos: int = STUB_EOS_ID):
        self._eos = eos

    def encode(self, text: str) -> list[int]:
        return list(text.encode("utf-8"))

    def decode(self, ids) -> str:
        return bytes(int(i) for i in ids).decode("utf-8", errors="replace")

    def eos_id(self) -> int:
        return self._eos


class ScriptedGraph:
    """Chat graph stub whose argmax at the last position follows a script.

    Once the script runs out, the last scripted token repeats.
    """

    def __init__(self, script, vocab_size: int = BYTE_VOCAB):
        self.script = [ord(t) if isinstance(t, str) else int(t) for t in script]
        self.vocab_size = vocab_size
        self.calls: list[dict] = []

    def run(self, named_inputs, output_names=None):
        self.calls.append({name: np.array(value) for name, value in named_inputs.items()})
        seq_len = named_inputs["input_ids"].shape[1]
        step = min(len(self.calls) - 1, len(self.script) - 1)
        logits = np.zeros((1, seq_len, self.vocab_size), dtype=np.float32)
        logits[0, -1, self.script[step]] = 1.0
        return {"logits": logits}


class FixedHiddenGraph:
    """Embedding graph stub returning a caller-supplied output."""

    def __init__(self, output_fn, name: str = "last_hidden_state"):
        self.output_fn = output_fn
        self.name = name
        self.calls = 0

    def run(self, named_inputs, output_names=None):
        self.calls += 1
        return {self.name: self.output_fn(named_inputs["input_ids"])}


def write_lookup_model(path: Path, table: np.ndarray, output_name: str) -> Path:
    """Write an ONNX graph mapping each input id to a row of ``table``.

    Inputs are ``input_ids`` and ``attention_mask`` (int64 [1, seq]); the
    output is ``table[input_ids]`` with shape [1, seq, table.shape[1]].
    """
    import onnx
    from onnx import TensorProto, helper, numpy_helper

    dim = table.shape[1]
    nodes = [
        helper.make_node("Sub", ["attention_mask", "attention_mask"], ["zeros"]),
        helper.make_node("Add", ["input_ids", "zeros"], ["ids"]),
        helper.make_node("Gather", ["table", "ids"], [output_name], axis=0),
    ]
    graph = helper.make_graph(
        nodes,
        "lookup",
        [
            helper.make_tensor_value_info("input_ids", TensorProto.INT64, [1, "seq"]),
            helper.make_tensor_value_info("attention_mask", TensorProto.INT64, [1, "seq"]),
        ],
        [helper.make_tensor_value_info(output_name, TensorProto.FLOAT, [1, "seq", dim])],
        initializer=[numpy_helper.from_array(table.astype(np.float32), name="table")],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.save(model, str(path))
    return path


def counting_table(vocab_size: int) -> np.ndarray:
    """Logit table where token i always predicts token i + 1."""
    table = np.zeros((vocab_size, vocab_size), dtype=np.float32)
    for i in range(vocab_size):
        table[i, (i + 1) % vocab_size] = 1.0
    return table


def write_word_tokenizer(path: Path, vocab: dict) -> Path:
    """Write a whitespace WordLevel ``tokenizer.json``."""
    from tokenizers import Tokenizer, models, pre_tokenizers

    tokenizer = Tokenizer(models.WordLevel(vocab=vocab, unk_token="<unk>"))
    tokenizer.pre_tokenizer = pre_tokenizers.Whitespace()
    tokenizer.save(str(path))
    return path


WORD_VOCAB = {"<unk>": 0, "<s>": 1, "</s>": 2, "user": 3, ":": 4, "hello": 5, "world": 6}


@pytest.fixture
def byte_tokenizer():
    """Provide a byte-level tokenizer with EOS id 2."""
    return ByteTokenizer()


@pytest.fixture
def scripted_graph():
    """Factory for scripted chat graphs."""
    return ScriptedGraph


@pytest.fixture
def hidden_graph():
    """Factory for embedding graph stubs."""
    return FixedHiddenGraph


@pytest.fixture
def counting_model(tmp_path):
    """ONNX chat model over the byte vocabulary that counts upwards."""
    return write_lookup_model(tmp_path / "counting.onnx", counting_table(BYTE_VOCAB), "logits")


@pytest.fixture
def embedding_table():
    """Deterministic [256, 4] embedding table."""
    return np.arange(BYTE_VOCAB * 4, dtype=np.float32).reshape(BYTE_VOCAB, 4) / 100.0


@pytest.fixture
def embedding_model(tmp_path, embedding_table):
    """ONNX embedding model over the byte vocabulary."""
    return write_lookup_model(tmp_path / "embedding.onnx", embedding_table, "last_hidden_state")


@pytest.fixture
def word_tokenizer():
    """Factory writing WordLevel tokenizer.json files."""
    return write_word_tokenizer


@pytest.fixture
def tokenizer_file(tmp_path):
    """WordLevel tokenizer.json with '</s>' at id 2."""
    return write_word_tokenizer(tmp_path / "tokenizer.json", WORD_VOCAB)


@pytest.fixture
def models_dir(tmp_path):
    """A models directory with complete 'small' tier artifacts.

    The chat model always predicts '</s>', so every reply is empty.
    """
    tier_dir = tmp_path / "models" / "small"
    tier_dir.mkdir(parents=True)
    vocab_size = len(WORD_VOCAB)

    write_word_tokenizer(tier_dir / "tokenizer.json", WORD_VOCAB)

    always_eos = np.zeros((vocab_size, vocab_size), dtype=np.float32)
    always_eos[:, WORD_VOCAB["</s>"]] = 1.0
    write_lookup_model(tier_dir / "phi-3-mini-instruct.onnx", always_eos, "logits")

    hidden = np.eye(vocab_size, dtype=np.float32)
    write_lookup_model(tier_dir / "embedding.onnx", hidden, "last_hidden_state")
    return tmp_path / "models"
