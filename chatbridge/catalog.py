"""
Model catalog: merge model lists across backends and rank by recent use.
"""

import asyncio
import logging
import unicodedata
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from chatbridge.adapters.base import ChatStrategy
from chatbridge.adapters.schema import BackendKind, Model
from chatbridge.config import DEFAULT_RECENT_LIMIT, SessionRecord

logger = logging.getLogger(__name__)


def collation_key(name: str) -> str:
    """
    Sort key that ignores case and diacritics but keeps base letters.

    "Ärger" and "arger" compare equal; "a" and "b" do not. Punctuation and
    digits order by codepoint, so "a1" sorts before "a_b", unlike an ICU
    base-sensitivity collation which puts "a_b" first.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def sort_models(models: Iterable[Model]) -> list[Model]:
    """Stable sort by collation_key; ties keep the backend's original order."""
    return sorted(models, key=lambda m: collation_key(m.name))


class ModelCatalog:
    """
    Aggregates list_models() from every registered adapter.

    Each backend's list is sorted on its own and the lists are concatenated
    in registration order. Same-named models on different backends stay
    separate entries.
    """

    def __init__(self, adapters: Mapping[BackendKind, ChatStrategy]):
        """
        Args:
            adapters: dict of BackendKind -> ChatStrategy instance
        """
        self._adapters = dict(adapters)

    @property
    def backends(self) -> list[BackendKind]:
        return list(self._adapters)

    async def list_all_models(self) -> list[Model]:
        """Fetch every backend's models concurrently. The first failure propagates."""
        results = await asyncio.gather(
            *(adapter.list_models() for adapter in self._adapters.values())
        )

        all_models: list[Model] = []
        for backend, models in zip(self._adapters, results):
            logger.debug(f"{backend.value}: {len(models)} models")
            all_models.extend(sort_models(models))
        return all_models


def find_model(catalog: Sequence[Model], name: str) -> Optional[Model]:
    """First catalog entry called `name`, or None."""
    for model in catalog:
        if model.name == name:
            return model
    return None


def _as_utc(moment: datetime) -> datetime:
    """Naive timestamps are taken to be UTC so mixed histories stay comparable."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def recent_models(
    sessions: Iterable[SessionRecord],
    catalog: Optional[Sequence[Model]],
    limit: int = DEFAULT_RECENT_LIMIT,
) -> list[Model]:
    """
    Models from the most recently used sessions, newest first.

    Sessions whose model is no longer in the catalog are skipped and each
    model appears once (at its most recent use). Returns [] without a catalog.
    """
    if not catalog or limit <= 0:
        return []

    newest_first = sorted(sessions, key=lambda s: _as_utc(s.updated_at), reverse=True)

    result: list[Model] = []
    seen: set[str] = set()
    for session in newest_first:
        if session.model in seen:
            continue
        model = find_model(catalog, session.model)
        if model is None:
            continue
        seen.add(session.model)
        result.append(model)
        if len(result) >= limit:
            break
    return result
