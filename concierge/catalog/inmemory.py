"""In-memory implementation of CatalogStore."""

import asyncio
from collections.abc import Callable

from concierge.catalog.models import Template
from concierge.catalog.store import CatalogStore


class InMemoryCatalogStore(CatalogStore):
    """In-memory catalog for testing and development.

    Writes are serialized by a single lock so that concurrent idempotent
    appends of the same value produce exactly one change.
    """

    def __init__(self, templates: list[Template] | None = None) -> None:
        self._templates: dict[str, Template] = {t.id: t for t in templates or []}
        self._lock = asyncio.Lock()

    async def get_template(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    async def get_templates(self, template_ids: list[str]) -> dict[str, Template]:
        return {tid: self._templates[tid] for tid in template_ids if tid in self._templates}

    async def get_template_versions(self, template_ids: list[str]) -> dict[str, int]:
        return {
            tid: self._templates[tid].version for tid in template_ids if tid in self._templates
        }

    async def save_template(self, template: Template) -> str:
        async with self._lock:
            previous = self._templates.get(template.id)
            if previous is not None and template.version <= previous.version:
                template = template.model_copy(update={"version": previous.version + 1})
            self._templates[template.id] = template
        return template.id

    async def add_trigger(self, template_id: str, scenario_id: str, phrase: str) -> bool:
        return await self._apply(template_id, lambda t: t.with_trigger(scenario_id, phrase))

    async def add_synonym(self, template_id: str, canonical: str, alias: str) -> bool:
        return await self._apply(template_id, lambda t: t.with_synonym(canonical, alias))

    async def add_filler(self, template_id: str, word: str) -> bool:
        return await self._apply(template_id, lambda t: t.with_filler(word))

    async def _apply(
        self,
        template_id: str,
        change: Callable[[Template], Template | None],
    ) -> bool:
        async with self._lock:
            template = self._templates.get(template_id)
            if template is None:
                return False
            updated = change(template)
            if updated is None:
                return False
            self._templates[template_id] = updated
            return True
