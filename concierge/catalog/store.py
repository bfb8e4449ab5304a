"""CatalogStore abstract interface."""

from abc import ABC, abstractmethod

from concierge.catalog.models import Template


class CatalogStore(ABC):
    """Read access to templates plus the narrow writes learning needs.

    The admin layer owns authoring. The engine only appends learned
    triggers, synonyms and filler words, and every append is idempotent:
    it returns False when the value was already present.

    A template's version increases on every successful write to it so
    scenario pools built from an older copy are rebuilt, and only those.
    """

    @abstractmethod
    async def get_template(self, template_id: str) -> Template | None:
        """Get a template by ID."""
        pass

    @abstractmethod
    async def get_templates(self, template_ids: list[str]) -> dict[str, Template]:
        """Get several templates; unknown IDs are omitted."""
        pass

    @abstractmethod
    async def save_template(self, template: Template) -> str:
        """Save a template, return its ID."""
        pass

    @abstractmethod
    async def get_template_versions(self, template_ids: list[str]) -> dict[str, int]:
        """Current version of each known template; unknown IDs are omitted."""
        pass

    @abstractmethod
    async def add_trigger(self, template_id: str, scenario_id: str, phrase: str) -> bool:
        """Append a trigger phrase to a scenario."""
        pass

    @abstractmethod
    async def add_synonym(self, template_id: str, canonical: str, alias: str) -> bool:
        """Map a colloquial alias to a canonical term."""
        pass

    @abstractmethod
    async def add_filler(self, template_id: str, word: str) -> bool:
        """Add a filler word to a template."""
        pass
