from dataclasses import dataclass
from typing import Optional, Union

from wikiref.core.errors import ErrorKind


@dataclass
class CacheEntry:
    """One cached fetch outcome.

    ``valid`` is False for negative entries, which remember a failed fetch
    (``error_kind`` set, ``content`` empty) so repeated lookups skip the
    network until the entry expires.
    """

    content: str
    created_at: float
    last_accessed_at: float
    size_bytes: int
    valid: bool = True
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class ResolutionResult:
    link: str
    replacement_text: str
    succeeded: bool
    error_kind: Optional[ErrorKind] = None
    content: str = ""
    from_cache: bool = False


@dataclass(frozen=True)
class Ok:
    content: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return False


FetchOutcome = Union[Ok, Err]
