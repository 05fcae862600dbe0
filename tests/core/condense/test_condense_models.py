"""Tests for content bundle models and result records."""

import pytest
from pydantic import ValidationError

from repo_condenser.core.condense.models import (
    ContentBundle,
    ContentKind,
    ContentUnit,
    UnitAction,
    UnitOutcome,
)


def _unit(kind, source_id, text="text"):
    return ContentUnit(kind=kind, source_id=source_id, text=text)


class TestContentUnit:
    """Tests for ContentUnit."""

    def test_immutable(self):
        """Test units cannot be modified in place."""
        unit = _unit(ContentKind.SOURCE, "main.py")
        with pytest.raises(ValidationError):
            unit.text = "changed"

    def test_with_text(self):
        """Test with_text returns a new unit with the same identity."""
        unit = _unit(ContentKind.SOURCE, "main.py")
        updated = unit.with_text("new")
        assert updated.text == "new"
        assert updated.source_id == "main.py"
        assert unit.text == "text"

    def test_empty_source_id_rejected(self):
        """Test a unit needs an identifier."""
        with pytest.raises(ValidationError):
            _unit(ContentKind.SOURCE, "")


class TestContentBundle:
    """Tests for ContentBundle validation and helpers."""

    def test_units_in_document_order(self):
        """Test units() yields primary, sources, configs, metadata."""
        bundle = ContentBundle(
            metadata=_unit(ContentKind.METADATA, "meta"),
            config_units=[_unit(ContentKind.CONFIG, "setup.cfg")],
            source_units=[_unit(ContentKind.SOURCE, "a.py"), _unit(ContentKind.SOURCE, "b.py")],
            primary_doc=_unit(ContentKind.PRIMARY_DOC, "README.md"),
        )
        assert [u.source_id for u in bundle.units()] == [
            "README.md",
            "a.py",
            "b.py",
            "setup.cfg",
            "meta",
        ]
        assert bundle.count_of(ContentKind.SOURCE) == 2
        assert bundle.count_of(ContentKind.PRIMARY_DOC) == 1

    def test_wrong_kind_in_slot_rejected(self):
        """Test a config unit cannot sit among the sources."""
        with pytest.raises(ValidationError, match="expected 'source'"):
            ContentBundle(source_units=[_unit(ContentKind.CONFIG, "pyproject.toml")])

    def test_duplicate_source_ids_rejected(self):
        """Test source ids are unique within a bundle."""
        with pytest.raises(ValidationError, match="Duplicate source_id"):
            ContentBundle(
                source_units=[_unit(ContentKind.SOURCE, "a.py"), _unit(ContentKind.SOURCE, "a.py")]
            )

    def test_replace_units(self):
        """Test replacements swap units by id and leave the rest alone."""
        readme = _unit(ContentKind.PRIMARY_DOC, "README.md")
        source = _unit(ContentKind.SOURCE, "a.py")
        bundle = ContentBundle(name="acme", primary_doc=readme, source_units=[source])

        replaced = bundle.replace_units({"a.py": source.with_text("short")})

        assert replaced.name == "acme"
        assert replaced.primary_doc == readme
        assert replaced.source_units[0].text == "short"
        assert bundle.source_units[0].text == "text"


class TestUnitOutcome:
    """Tests for result records."""

    def test_to_dict(self):
        """Test enum values are serialized as strings."""
        outcome = UnitOutcome(
            source_id="a.py",
            kind=ContentKind.SOURCE,
            action=UnitAction.TRUNCATED,
            original_tokens=300,
            final_tokens=200,
            budget=200,
        )
        assert outcome.to_dict() == {
            "source_id": "a.py",
            "kind": "source",
            "action": "truncated",
            "original_tokens": 300,
            "final_tokens": 200,
            "budget": 200,
        }
