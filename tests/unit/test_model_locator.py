"""Tests for (tier, task) -> artifact path resolution."""

from pathlib import Path

import pytest

from tierchat.errors import ConfigError
from tierchat.model_locator import (
    DEFAULT_MODEL_TABLE,
    ModelConfig,
    ModelLocator,
    ModelTask,
)
from tierchat.tier import Tier


class TestModelLocator:
    """Tests for ModelLocator."""

    @pytest.fixture
    def locator(self):
        """Provide a locator rooted at 'models'."""
        return ModelLocator("models")

    def test_table_is_exhaustive(self):
        """Test that every (tier, task) pair has an entry."""
        assert len(DEFAULT_MODEL_TABLE) == len(Tier) * len(ModelTask)

    def test_small_chat_paths(self, locator):
        """Test the full path layout for one tier."""
        config = locator.resolve(Tier.SMALL, ModelTask.CHAT)

        assert config.chat_model_path == Path("models/small/phi-3-mini-instruct.onnx")
        assert config.embedding_model_path == Path("models/small/embedding.onnx")
        assert config.tokenizer_path == Path("models/small/tokenizer.json")

    def test_micro_shares_one_model(self, locator):
        """Test that the micro tier uses one model file for every task."""
        paths = {locator.resolve(Tier.MICRO, task).chat_model_path for task in ModelTask}

        assert paths == {Path("models/micro/qwen2-0.5b-instruct.onnx")}

    @pytest.mark.parametrize("tier", list(Tier))
    def test_predict_and_categorise_share_model(self, locator, tier):
        """Test that PREDICT and CATEGORISE resolve identically within a tier."""
        predict = locator.resolve(tier, ModelTask.PREDICT)
        categorise = locator.resolve(tier, ModelTask.CATEGORISE)

        assert predict == categorise

    def test_resolution_is_pure(self, locator):
        """Test that resolving twice gives equal results without touching disk."""
        first = locator.resolve(Tier.LARGE, ModelTask.CHAT)
        second = locator.resolve(Tier.LARGE, ModelTask.CHAT)

        assert first == second
        assert first.chat_model_path == Path("models/large/llama-3-8b-instruct.onnx")

    def test_default_task_is_chat(self, locator):
        """Test that resolve defaults to the chat task."""
        assert locator.resolve(Tier.MEDIUM) == locator.resolve(Tier.MEDIUM, ModelTask.CHAT)

    def test_incomplete_table_rejected(self):
        """Test that a table missing a combination raises ConfigError."""
        table = dict(DEFAULT_MODEL_TABLE)
        del table[(Tier.MACRO, ModelTask.PREDICT)]

        with pytest.raises(ConfigError, match="macro/predict"):
            ModelLocator("models", table=table)

    def test_custom_table(self):
        """Test that a custom table is honored."""
        table = {key: "custom.onnx" for key in DEFAULT_MODEL_TABLE}
        locator = ModelLocator("/opt/models", table=table)

        assert locator.resolve(Tier.MICRO).chat_model_path == Path("/opt/models/micro/custom.onnx")


class TestModelConfig:
    """Tests for ModelConfig."""

    def test_missing(self, tmp_path):
        """Test that missing() lists only absent artifacts."""
        present = tmp_path / "tokenizer.json"
        present.write_text("{}")
        config = ModelConfig(
            chat_model_path=tmp_path / "chat.onnx",
            embedding_model_path=tmp_path / "embedding.onnx",
            tokenizer_path=present,
        )

        assert config.missing() == [tmp_path / "chat.onnx", tmp_path / "embedding.onnx"]


class TestModelTaskParse:
    """Tests for task name parsing."""

    def test_parse(self):
        """Test parsing a task name."""
        assert ModelTask.parse("Categorise") == ModelTask.CATEGORISE

    def test_unknown(self):
        """Test that unknown tasks raise ConfigError."""
        with pytest.raises(ConfigError):
            ModelTask.parse("summarise")
