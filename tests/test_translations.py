"""
Tests for the translation adapter and the I18n store.
"""

from typing import Optional

import pytest
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from activealchemy.config import configure
from activealchemy.exceptions import ConfigurationError
from activealchemy.i18n import I18n, get_i18n, interpolate
from activealchemy.translations import TranslationsMixin


@pytest.fixture
def models(base):
    class Person(TranslationsMixin, base):
        __tablename__ = "people"

        id: Mapped[int] = mapped_column(primary_key=True)
        first_name: Mapped[Optional[str]] = mapped_column(String(50))
        team_id: Mapped[Optional[int]]

    class Employee(Person):
        __tablename__ = "employees"

        id: Mapped[int] = mapped_column(ForeignKey("people.id"), primary_key=True)

    return Person, Employee


class TestTranslationsMixin:
    """Tests for i18n scope, ancestors and human names."""

    def test_i18n_scope_default(self, models):
        person, _ = models
        assert person.i18n_scope() == "activealchemy"

    def test_i18n_scope_configurable(self, models):
        person, _ = models
        configure(i18n_scope="myapp")
        assert person.i18n_scope() == "myapp"

    def test_i18n_scope_pinned_by_class(self, models):
        person, employee = models
        person.__i18n_scope__ = "people"
        configure(i18n_scope="myapp")

        assert person.i18n_scope() == "people"
        assert employee.i18n_scope() == "people"

    def test_lookup_ancestors(self, models):
        person, employee = models
        assert person.lookup_ancestors() == [person]
        assert employee.lookup_ancestors() == [employee, person]

    def test_model_name(self, models):
        person, employee = models
        assert person.model_name().i18n_key == "person"
        assert person.model_name().plural == "people"
        assert employee.model_name().route_key == "employees"

    def test_human_attribute_name_default(self, models):
        person, _ = models
        assert person.human_attribute_name("first_name") == "First name"
        assert person.human_attribute_name("team_id") == "Team"

    def test_human_attribute_name_translated(self, models):
        person, employee = models
        get_i18n().store_translations("en", {
            "activealchemy": {"attributes": {"person": {"first_name": "Given name"}}},
            "attributes": {"team_id": "Squad"},
        })

        assert person.human_attribute_name("first_name") == "Given name"
        assert employee.human_attribute_name("first_name") == "Given name"
        assert employee.human_attribute_name("team_id") == "Squad"

    def test_human_attribute_name_explicit_default(self, models):
        person, _ = models
        assert person.human_attribute_name("nickname", default="Alias") == "Alias"

    def test_human_name(self, models):
        person, employee = models
        assert person.human_name() == "Person"

        get_i18n().store_translations("en", {"activealchemy": {"models": {"person": "Human"}}})
        assert person.human_name() == "Human"
        assert employee.human_name() == "Human"

    def test_error_messages_use_ancestor_keys(self, models):
        person, employee = models
        get_i18n().store_translations("en", {
            "activealchemy": {
                "errors": {"models": {"person": {"attributes": {"first_name": {"blank": "is required"}}}}}
            }
        })

        record = employee()
        record.errors.add("first_name", "blank")

        assert record.errors["first_name"] == ["is required"]
        assert record.errors.full_messages() == ["First name is required"]

    def test_scope_specific_messages(self, models):
        person, _ = models
        configure(i18n_scope="myapp")
        get_i18n().store_translations("en", {
            "myapp": {"errors": {"messages": {"blank": "must be filled in"}}}
        })

        record = person()
        record.errors.add("first_name", "blank")

        assert record.errors["first_name"] == ["must be filled in"]


class TestI18n:
    """Tests for the translation store."""

    @pytest.fixture
    def i18n(self):
        store = I18n()
        store.store_translations("en", {
            "greeting": "Hello {name}",
            "apples": {"one": "one apple", "other": "{count} apples"},
            "nested": {"deep": {"key": "found"}},
        })
        store.store_translations("fr", {"greeting": "Bonjour {name}"})
        return store

    def test_translate_with_interpolation(self, i18n):
        assert i18n.translate("greeting", name="Ada") == "Hello Ada"
        assert i18n.t("greeting", name="Ada", locale="fr") == "Bonjour Ada"

    def test_pluralization(self, i18n):
        assert i18n.translate("apples", count=1) == "one apple"
        assert i18n.translate("apples", count=3) == "3 apples"

    def test_fallback_keys_and_default(self, i18n):
        assert i18n.translate("missing", defaults=["nested.deep.key"]) == "found"
        assert i18n.translate("missing", default="literal {x}", x=1) == "literal 1"

    def test_missing_translation(self, i18n):
        assert i18n.translate("missing.key") == "translation missing: en.missing.key"
        assert not i18n.exists("missing.key")
        assert i18n.exists("nested.deep")

    def test_store_merges(self, i18n):
        i18n.store_translations("en", {"nested": {"deep": {"other": "x"}}})
        assert i18n.translate("nested.deep.key") == "found"
        assert i18n.translate("nested.deep.other") == "x"

    def test_load_path(self, tmp_path):
        path = tmp_path / "de.yml"
        path.write_text("de:\n  errors:\n    messages:\n      blank: \"darf nicht leer sein\"\n")
        store = I18n(locale="de")
        store.load_path(path)

        assert store.translate("errors.messages.blank") == "darf nicht leer sein"

    def test_load_path_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "broken.yml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="Invalid locale file"):
            I18n().load_path(path)

    def test_default_store_ships_english_messages(self):
        assert get_i18n().translate("errors.messages.taken") == "has already been taken"

    def test_interpolate_keeps_unknown_placeholders(self):
        assert interpolate("{attribute} is {what}", attribute="Name") == "Name is {what}"
