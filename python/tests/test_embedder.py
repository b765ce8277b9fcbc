"""
Embedder Tests - Verify model routing, lazy loading and failure modes.

Tests:
- No model load for empty or blank input
- Query vs passage handling
- Permanent initialization failures
- Per-call generation failures
- Routing modes
"""

import numpy as np
import pytest

from conftest import FAKE_DIMENSION, BrokenModel, FakeModelFactory
from indexsync.config import RoutingMode, SyncConfig
from indexsync.embedder import EmbeddingRouter, model_spec_for
from indexsync.errors import EmbeddingError, GenerationError, InitializationError
from indexsync.models import EmbeddingRole, Language


MULTILINGUAL = "intfloat/multilingual-e5-large"
DEFAULT = "BAAI/bge-small-en-v1.5"


class TestModelSpec:
    """Tests for role markers per model family."""

    def test_e5_markers(self):
        spec = model_spec_for(MULTILINGUAL)
        assert spec.query_prefix == "query: "
        assert spec.passage_prefix == "passage: "

    def test_bge_markers(self):
        spec = model_spec_for(DEFAULT)
        assert spec.query_prefix.startswith("Represent this sentence")
        assert spec.passage_prefix == ""

    def test_unknown_model_no_markers(self):
        spec = model_spec_for("some/other-model")
        assert spec.query_prefix == ""
        assert spec.passage_prefix == ""


class TestEmbeddingRouter:
    """Tests for EmbeddingRouter.embed."""

    @pytest.fixture
    def router(self, test_config, model_factory):
        return EmbeddingRouter(test_config, model_factory=model_factory)

    def test_empty_batch_loads_nothing(self, router, model_factory):
        """An empty batch returns no vectors and never constructs a model."""
        result = router.embed([], Language.ENGLISH, EmbeddingRole.PASSAGE)
        assert len(result) == 0
        assert model_factory.load_count == 0
        assert not router.is_loaded(Language.ENGLISH)

    def test_blank_passages_load_nothing(self, router, model_factory):
        """Whitespace-only passages are dropped before the model is touched."""
        result = router.embed(["   ", "\n\t"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        assert len(result) == 0
        assert model_factory.load_count == 0

    def test_model_loaded_once(self, router, model_factory):
        """Repeated calls reuse the same model instance."""
        router.embed(["first"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        router.embed(["second"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        router.embed(["third"], Language.AMHARIC, EmbeddingRole.QUERY)
        assert model_factory.load_count == 1
        assert router.is_loaded(Language.ENGLISH)

    def test_query_prefixed_not_chunked(self, router, model_factory, test_config):
        """Queries are embedded whole with the query marker."""
        long_query = "find " * (test_config.chunk_size // 2)
        result = router.embed([long_query], Language.ENGLISH, EmbeddingRole.QUERY)

        assert result.shape == (1, FAKE_DIMENSION)
        sent = model_factory.models[MULTILINGUAL].calls[0]
        assert sent == [f"query: {long_query.strip()}"]

    def test_passage_chunked_with_marker(self, router, model_factory, test_config):
        """Long passages become several chunks, each with the passage marker."""
        passage = " ".join(f"word{i}" for i in range(200))
        result = router.embed([passage], Language.ENGLISH, EmbeddingRole.PASSAGE)

        sent = [t for call in model_factory.models[MULTILINGUAL].calls for t in call]
        assert len(sent) > 1
        assert all(t.startswith("passage: ") for t in sent)
        assert result.shape == (len(sent), FAKE_DIMENSION)

    def test_output_in_submission_order(self, router):
        """Rows follow input order across batches."""
        texts = [f"distinct text {chr(ord('a') + i)}" * (i + 1) for i in range(10)]
        together = router.embed(texts, Language.ENGLISH, EmbeddingRole.QUERY)
        for i, text in enumerate(texts):
            alone = router.embed([text], Language.ENGLISH, EmbeddingRole.QUERY)
            np.testing.assert_allclose(together[i], alone[0], rtol=1e-6)

    def test_vectors_normalized(self, router):
        result = router.embed(["normalize me"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        assert np.isclose(np.linalg.norm(result[0]), 1.0)

    def test_embed_query_blank(self, router, model_factory):
        assert router.embed_query("   ", Language.ENGLISH) is None
        assert model_factory.load_count == 0

    def test_embed_query_single_vector(self, router):
        vector = router.embed_query("where is my report", Language.ENGLISH)
        assert vector.shape == (FAKE_DIMENSION,)


class TestEmbeddingFailures:
    """Tests for initialization and generation failures."""

    def test_initialization_failure_is_permanent(self, test_config):
        """A failed load is not retried; every call raises InitializationError."""
        attempts = []

        def failing_factory(spec, config):
            attempts.append(spec.name)
            raise OSError("model files missing")

        router = EmbeddingRouter(test_config, model_factory=failing_factory)

        with pytest.raises(InitializationError):
            router.embed(["text"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        with pytest.raises(InitializationError):
            router.embed(["more text"], Language.ENGLISH, EmbeddingRole.PASSAGE)

        assert attempts == [MULTILINGUAL]

    def test_generation_failure(self, test_config):
        """A model that fails on encode raises GenerationError."""
        router = EmbeddingRouter(test_config, model_factory=lambda spec, config: BrokenModel())

        with pytest.raises(GenerationError):
            router.embed(["text"], Language.ENGLISH, EmbeddingRole.PASSAGE)

    def test_generation_failure_not_permanent(self, test_config):
        """After a GenerationError the same model is used again."""
        calls = {"count": 0}
        factory = FakeModelFactory()

        def flaky_factory(spec, config):
            model = factory(spec, config)
            original = model.encode

            def encode(texts, **kwargs):
                calls["count"] += 1
                if calls["count"] == 1:
                    raise RuntimeError("transient failure")
                return original(texts, **kwargs)

            model.encode = encode
            return model

        router = EmbeddingRouter(test_config, model_factory=flaky_factory)
        with pytest.raises(GenerationError):
            router.embed(["text"], Language.ENGLISH, EmbeddingRole.PASSAGE)

        result = router.embed(["text"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        assert len(result) == 1
        assert factory.load_count == 1

    def test_errors_share_base(self):
        assert issubclass(InitializationError, EmbeddingError)
        assert issubclass(GenerationError, EmbeddingError)


class TestRouting:
    """Tests for language routing modes."""

    def test_multilingual_mode_single_model(self, test_config, model_factory):
        router = EmbeddingRouter(test_config, model_factory=model_factory)
        assert router.spec_for(Language.ENGLISH).name == MULTILINGUAL
        assert router.spec_for(Language.AMHARIC).name == MULTILINGUAL
        assert router.spec_for(Language.OTHER).name == MULTILINGUAL

    def test_per_language_mode(self, temp_dir, model_factory):
        config = SyncConfig(
            db_path=temp_dir / "v.db",
            fulltext_path=temp_dir / "f.db",
            model_cache_dir=temp_dir / "models",
            routing=RoutingMode.PER_LANGUAGE,
        )
        router = EmbeddingRouter(config, model_factory=model_factory)

        assert router.spec_for(Language.AMHARIC).name == MULTILINGUAL
        assert router.spec_for(Language.ENGLISH).name == DEFAULT
        assert router.spec_for(Language.OTHER).name == DEFAULT

        router.embed(["hello"], Language.ENGLISH, EmbeddingRole.PASSAGE)
        router.embed(["ሰላም"], Language.AMHARIC, EmbeddingRole.PASSAGE)
        assert set(model_factory.models) == {DEFAULT, MULTILINGUAL}
        assert model_factory.load_count == 2

    def test_routing_from_string(self, temp_dir):
        config = SyncConfig(
            db_path=temp_dir / "v.db",
            fulltext_path=temp_dir / "f.db",
            routing="per_language",
        )
        assert config.routing == RoutingMode.PER_LANGUAGE
