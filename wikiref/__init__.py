"""Resolve Confluence page links embedded in free-form text."""

from wikiref.config import ConfluenceConfig, PipelineSettings, ResolveConfig
from wikiref.core.references import ReferencePipeline

__version__ = "0.3.0"

__all__ = [
    "ConfluenceConfig",
    "PipelineSettings",
    "ReferencePipeline",
    "ResolveConfig",
]
