"""Static per-module tables: timeouts and always-conversational modules.

Both are keyed by module slug and maintained by hand, so they are checked
against the module catalog at startup.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 180.0

MODULE_TIMEOUTS_SECONDS: dict[str, float] = {
    "social-factory": 240.0,
    "ai-writer": 180.0,
    "document-generator": 300.0,
    "real-estate-lease-generator": 240.0,
    "email-campaign": 240.0,
    "article-writer": 240.0,
}

CHAT_MODULES: frozenset[str] = frozenset({"social-factory", "email-campaign", "article-writer"})


def timeout_for(
    slug: str,
    timeouts: Mapping[str, float] = MODULE_TIMEOUTS_SECONDS,
    default: float = DEFAULT_TIMEOUT_SECONDS,
) -> float:
    return timeouts.get(slug, default)


def validate_module_tables(
    catalog_slugs: Iterable[str],
    timeouts: Mapping[str, float] = MODULE_TIMEOUTS_SECONDS,
    chat_modules: Iterable[str] = CHAT_MODULES,
) -> list[str]:
    """Return table slugs that the catalog does not know about.

    Unknown slugs are logged, not fatal: the tables only tune behaviour.
    """
    known = set(catalog_slugs)
    unknown = sorted((set(timeouts) | set(chat_modules)) - known)
    for slug in unknown:
        LOGGER.warning("Module table entry %r has no matching module in the catalog", slug)
    for slug, seconds in timeouts.items():
        if seconds <= 0:
            LOGGER.warning("Module %r has a non-positive timeout (%s s)", slug, seconds)
    return unknown
