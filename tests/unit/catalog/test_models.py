"""Tests for catalog models."""

import pytest
from pydantic import ValidationError

from concierge.catalog.models import (
    Category,
    ReplyVariant,
    Scenario,
    ScenarioStatus,
    Template,
)
from tests.factories import ScenarioFactory, TemplateFactory


class TestScenario:
    """Tests for Scenario."""

    def test_string_replies_coerced_to_variants(self):
        """Should accept plain strings as reply variants."""
        scenario = ScenarioFactory.create(quick_replies=["One", {"text": "Two", "weight": 3}])

        assert scenario.quick_replies == [
            ReplyVariant(text="One"),
            ReplyVariant(text="Two", weight=3),
        ]

    def test_invalid_regex_rejected(self):
        """Should reject regex triggers that do not compile."""
        with pytest.raises(ValidationError, match="Invalid regex"):
            ScenarioFactory.create(regex_triggers=["(unclosed"])

    def test_frozen(self):
        """Should not allow mutation."""
        scenario = ScenarioFactory.create()

        with pytest.raises(ValidationError):
            scenario.priority = 5

    def test_is_live(self):
        """Should only treat LIVE scenarios as matchable."""
        assert ScenarioFactory.create().is_live
        assert not ScenarioFactory.create(status=ScenarioStatus.DRAFT).is_live
        assert not ScenarioFactory.create(status=ScenarioStatus.ARCHIVED).is_live

    @pytest.mark.parametrize(
        ("kwargs", "expected"),
        [
            ({"urgent": True}, True),
            ({"name": "Gas leak emergency"}, True),
            ({"category": "Urgent repairs"}, True),
            ({"name": "Book appointment"}, False),
        ],
    )
    def test_is_urgent(self, kwargs, expected):
        """Should be urgent when flagged or labeled as an emergency."""
        assert ScenarioFactory.create(**kwargs).is_urgent is expected

    def test_has_trigger_ignores_case_and_punctuation(self):
        """Should compare triggers in cleaned form."""
        scenario = ScenarioFactory.create(triggers=["need an appointment"])

        assert scenario.has_trigger("Need an appointment!")
        assert not scenario.has_trigger("need a plumber")


class TestTemplate:
    """Tests for Template copy-on-write helpers."""

    @pytest.fixture
    def template(self) -> Template:
        return TemplateFactory.create(
            scenarios=[ScenarioFactory.create(id="book", triggers=["book a visit"])],
            categories=[
                Category(
                    id="repairs",
                    name="Repairs",
                    scenarios=[ScenarioFactory.create(id="fix_ac", triggers=["ac broken"])],
                )
            ],
            synonym_map={"air conditioner": ["ac unit"]},
        )

    def test_iter_scenarios_includes_categories(self, template):
        """Should yield uncategorized and categorized scenarios."""
        items = [(s.id, c.name if c else None) for s, c in template.iter_scenarios()]

        assert items == [("book", None), ("fix_ac", "Repairs")]

    def test_with_trigger_appends_and_bumps_version(self, template):
        """Should return a new template with the trigger added."""
        updated = template.with_trigger("fix_ac", "My AC died!")

        assert updated is not None
        assert updated.version == template.version + 1
        assert updated.find_scenario("fix_ac").triggers == ["ac broken", "my ac died"]
        assert template.find_scenario("fix_ac").triggers == ["ac broken"]

    def test_with_trigger_idempotent(self, template):
        """Should return None for a phrase already present."""
        updated = template.with_trigger("fix_ac", "my ac died")

        assert updated.with_trigger("fix_ac", "My AC died") is None

    def test_with_trigger_unknown_scenario(self, template):
        """Should return None for an unknown scenario."""
        assert template.with_trigger("missing", "anything") is None

    def test_with_synonym(self, template):
        """Should append aliases once."""
        updated = template.with_synonym("air conditioner", "AC")

        assert updated.synonym_map["air conditioner"] == ["ac unit", "ac"]
        assert updated.with_synonym("air conditioner", "ac") is None
        assert template.with_synonym("ac", "ac") is None

    def test_with_filler(self, template):
        """Should add a filler word once."""
        updated = template.with_filler("Like")

        assert "like" in updated.filler_words
        assert updated.with_filler("like") is None
        assert template.with_filler("   ") is None


class TestScenarioIds:
    """Scenario identity rules."""

    def test_empty_id_rejected(self):
        """Should require a non-empty id."""
        with pytest.raises(ValidationError):
            Scenario(id="", name="x")
