"""Document ingestion and retrieval-augmentation core."""

from .config import ProviderSettings, SmartChunkingOptions, resolve_chunking_options
from .ingest.assembler import SmartChunker
from .ingest.embedder import EmbeddingBatcher
from .ingest.pipeline import IngestPipeline
from .ingest.sanitizer import sanitize, validate_for_embedding
from .qa.verifier import CorpusVerifier
from .retrieval.query_expansion import QueryExpander, detect_follow_up

__all__ = [
    "CorpusVerifier",
    "EmbeddingBatcher",
    "IngestPipeline",
    "ProviderSettings",
    "QueryExpander",
    "SmartChunker",
    "SmartChunkingOptions",
    "detect_follow_up",
    "resolve_chunking_options",
    "sanitize",
    "validate_for_embedding",
]
