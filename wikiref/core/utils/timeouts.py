"""Network timeouts, overridable through WIKIREF_TIMEOUT_* variables."""

from dataclasses import dataclass

from wikiref.config import _get_float_env


@dataclass(frozen=True)
class Timeouts:

    HTTP_DEFAULT: float = _get_float_env("WIKIREF_TIMEOUT_HTTP", 30.0)
    HTTP_CONNECT: float = _get_float_env("WIKIREF_TIMEOUT_CONNECT", 5.0)
    HTTP_CONFLUENCE: float = _get_float_env("WIKIREF_TIMEOUT_CONFLUENCE", 30.0)
    # How long an open breaker refuses calls before probing again
    BREAKER_COOLDOWN: float = _get_float_env("WIKIREF_BREAKER_COOLDOWN", 30.0)


TIMEOUTS = Timeouts()

# Keyed by the service family, the part of a pool service name before ":"
SERVICE_TIMEOUTS: dict[str, float] = {
    "confluence": TIMEOUTS.HTTP_CONFLUENCE,
    "default": TIMEOUTS.HTTP_DEFAULT,
}
