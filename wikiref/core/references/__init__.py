from .cache import CacheStats, ContentCache
from .debounce import DebounceScheduler, DebounceTicket
from .extractor import (
    count_candidate_links,
    count_links,
    extract_links,
    extract_page_id,
    split_marked,
    substitute_links,
    wrap_content,
)
from .gate import ConcurrencyGate
from .inflight import InFlightRegistry
from .models import CacheEntry, Err, FetchOutcome, Ok, ResolutionResult
from .pipeline import ReferencePipeline
from .resolver import ContentSource, ReferenceResolver, Sanitizer
from .sweeper import MaintenanceSweeper

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ConcurrencyGate",
    "ContentCache",
    "ContentSource",
    "DebounceScheduler",
    "DebounceTicket",
    "Err",
    "FetchOutcome",
    "InFlightRegistry",
    "MaintenanceSweeper",
    "Ok",
    "ReferencePipeline",
    "ReferenceResolver",
    "ResolutionResult",
    "Sanitizer",
    "count_candidate_links",
    "count_links",
    "extract_links",
    "extract_page_id",
    "split_marked",
    "substitute_links",
    "wrap_content",
]
