"""
Embedder - Language-routed text-to-vector embedding.

The EmbeddingRouter owns one lazily-loaded model per model name. A model
that fails to load stays failed for the lifetime of the router: every
later call raises the same InitializationError instead of retrying.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .chunker import Chunker
from .config import get_config, RoutingMode, SyncConfig
from .errors import GenerationError, InitializationError
from .models import EmbeddingRole, Language


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """An embedding model and the role markers it was trained with."""
    name: str
    query_prefix: str = ""
    passage_prefix: str = ""


def model_spec_for(name: str) -> ModelSpec:
    """Build the spec for a model name, picking its role markers."""
    lowered = name.lower()
    if "e5" in lowered:
        return ModelSpec(name, query_prefix="query: ", passage_prefix="passage: ")
    if "bge" in lowered:
        return ModelSpec(
            name,
            query_prefix="Represent this sentence for searching relevant passages: ",
        )
    return ModelSpec(name)


def load_sentence_transformer(spec: ModelSpec, config: SyncConfig):
    """Load a SentenceTransformer model, with ONNX support if enabled."""
    try:
        from sentence_transformers import SentenceTransformer
        import torch
    except ImportError:
        logger.error("sentence-transformers not installed. Run: pip install sentence-transformers")
        raise

    # Determine device
    device = "cpu"
    if torch.backends.mps.is_available():
        device = "mps"
    elif torch.cuda.is_available():
        device = "cuda"

    kwargs = {"device": device, "cache_folder": str(config.model_cache_dir)}
    if config.use_onnx:
        kwargs["backend"] = "onnx"

    logger.info(f"Loading embedding model {spec.name} on {device}...")
    model = SentenceTransformer(spec.name, **kwargs)
    logger.info(
        f"Loaded {spec.name} (dim={model.get_sentence_embedding_dimension()}, "
        f"backend={'ONNX' if config.use_onnx else 'PyTorch'})"
    )
    return model


ModelFactory = Callable[[ModelSpec, SyncConfig], object]


class EmbeddingRouter:
    """
    Routes text to an embedding model chosen by language.

    Constructed once at application startup and shared by every caller.

    Features:
    - Lazy, at-most-once model construction per model name
    - Permanent initialization failures, distinct from per-call failures
    - Passage chunking with the model's passage marker
    - Batched encode calls, output in submission order
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        model_factory: Optional[ModelFactory] = None,
        chunker: Optional[Chunker] = None,
    ):
        self.config = config or get_config()
        self._model_factory = model_factory or load_sentence_transformer
        self._chunker = chunker or Chunker(self.config)
        self._models: Dict[str, object] = {}
        self._failures: Dict[str, InitializationError] = {}
        self._lock = threading.Lock()

        self._default = model_spec_for(self.config.default_model)
        self._multilingual = model_spec_for(self.config.multilingual_model)

    def spec_for(self, language: Language) -> ModelSpec:
        """Pick the model for a language according to the routing mode."""
        if self.config.routing == RoutingMode.MULTILINGUAL:
            return self._multilingual
        if language == Language.AMHARIC:
            return self._multilingual
        if language != Language.ENGLISH:
            logger.debug(f"No dedicated model for {language.value}, using default model")
        return self._default

    def _get_model(self, spec: ModelSpec):
        """Return the loaded model, loading it on first use."""
        with self._lock:
            if spec.name in self._failures:
                raise self._failures[spec.name]

            model = self._models.get(spec.name)
            if model is None:
                try:
                    model = self._model_factory(spec, self.config)
                except Exception as e:
                    error = InitializationError(
                        f"Failed to initialize embedding model {spec.name}: {e}"
                    )
                    self._failures[spec.name] = error
                    logger.error(str(error))
                    raise error from e
                self._models[spec.name] = model
            return model

    def is_loaded(self, language: Language) -> bool:
        """Whether the model for a language has been constructed."""
        return self.spec_for(language).name in self._models

    def embed(
        self,
        texts: Sequence[str],
        language: Language,
        role: EmbeddingRole,
    ) -> np.ndarray:
        """
        Embed texts with the model for `language`.

        Queries are embedded whole with the query marker. Passages are
        chunked first, each chunk carrying the passage marker. Blank
        inputs are dropped; if nothing is left no model is touched.

        Returns:
            float32 array of shape (n_chunks, dimension); (0, 0) when empty

        Raises:
            InitializationError: The model could not be loaded (permanent)
            GenerationError: The model failed on this input
        """
        if not texts:
            return np.empty((0, 0), dtype=np.float32)

        spec = self.spec_for(language)
        inputs = self._prepare(texts, spec, role)

        if not inputs:
            return np.empty((0, 0), dtype=np.float32)

        model = self._get_model(spec)
        logger.debug(f"Embedding {len(inputs)} {role.value} inputs with {spec.name}")

        batch_size = self.config.embedder_batch_size
        all_embeddings = []
        try:
            for i in range(0, len(inputs), batch_size):
                batch = inputs[i:i + batch_size]
                embeddings = model.encode(
                    batch,
                    convert_to_numpy=True,
                    normalize_embeddings=True,  # Better for cosine similarity
                )
                all_embeddings.append(np.asarray(embeddings, dtype=np.float32))
        except Exception as e:
            logger.error(f"Embedding generation failed: {e}")
            raise GenerationError(f"Embedding generation failed: {e}") from e

        return np.vstack(all_embeddings)

    def _prepare(self, texts: Sequence[str], spec: ModelSpec, role: EmbeddingRole) -> List[str]:
        if role == EmbeddingRole.QUERY:
            return [f"{spec.query_prefix}{t.strip()}" for t in texts if t.strip()]

        chunks: List[str] = []
        for text in texts:
            if not text.strip():
                continue
            chunks.extend(self._chunker.chunk(text, spec.passage_prefix))
        return chunks

    def embed_query(self, query: str, language: Language) -> Optional[np.ndarray]:
        """Embed a single search query; None for a blank query."""
        vectors = self.embed([query], language, EmbeddingRole.QUERY)
        return vectors[0] if len(vectors) else None
