"""
Tests for the uniqueness rule against an in-memory SQLite database.
"""

from typing import Optional
from unittest.mock import patch

import pytest
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from activealchemy.exceptions import ConfigurationError, ValidationFailed
from activealchemy.model import Dataset
from activealchemy.validations import ValidationsMixin
from activealchemy.validators import UniquenessValidator


@pytest.fixture
def user_class(base):
    class User(ValidationsMixin, base):
        __tablename__ = "users"

        id: Mapped[int] = mapped_column(primary_key=True)
        email: Mapped[Optional[str]] = mapped_column(String(100))
        team: Mapped[Optional[str]] = mapped_column(String(20))
        name: Mapped[Optional[str]] = mapped_column(String(50))

    return User


@pytest.fixture
def session(user_class, make_session):
    return make_session()


@pytest.fixture
def bound(user_class, session):
    user_class.bind_session(session)
    yield session
    user_class.bind_session(None)


class TestUniqueness:
    """Tests for UniquenessValidator."""

    def test_duplicate_is_taken(self, user_class, session, bound):
        user_class.validates("email", uniqueness=True)
        user_class(email="ada@example.com").save(session)

        duplicate = user_class(email="ada@example.com")

        assert duplicate.valid() is False
        assert duplicate.errors["email"] == ["has already been taken"]
        assert duplicate.errors.details["email"] == [{"error": "taken", "value": "ada@example.com"}]

    def test_save_checks_with_the_given_session(self, user_class, session, row_count):
        user_class.validates("email", uniqueness=True)
        user_class(email="ada@example.com").save(session)

        with pytest.raises(ValidationFailed, match="Email has already been taken"):
            user_class(email="ada@example.com").save(session)
        assert row_count(session, user_class) == 1

    def test_existing_record_does_not_conflict_with_itself(self, user_class, session):
        user_class.validates("email", uniqueness=True)
        user = user_class(email="ada@example.com")
        user.save(session)

        assert user.valid() is True
        user.name = "Ada"
        assert user.save(session) is user

    def test_update_to_taken_value(self, user_class, session):
        user_class.validates("email", uniqueness=True)
        user_class(email="ada@example.com").save(session)
        other = user_class(email="bob@example.com")
        other.save(session)

        other.email = "ada@example.com"

        assert other.valid() is False
        assert other.errors.added("email", "taken")

    def test_scope(self, user_class, session, bound):
        user_class.validates("email", uniqueness={"scope": "team"})
        user_class(email="ada@example.com", team="red").save(session)

        assert user_class(email="ada@example.com", team="blue").valid() is True
        assert user_class(email="ada@example.com", team="red").valid() is False

    def test_scope_matches_null(self, user_class, session, bound):
        user_class.validates("email", uniqueness={"scope": ["team"]})
        user_class(email="ada@example.com", team=None).save(session)

        assert user_class(email="ada@example.com", team=None).valid() is False
        assert user_class(email="ada@example.com", team="red").valid() is True

    def test_case_sensitivity(self, user_class, session, bound):
        user_class(email="ada@example.com").save(session)

        user_class.validates("email", uniqueness=True)
        assert user_class(email="ADA@example.com").valid() is True

    def test_case_insensitive(self, user_class, session, bound):
        user_class.validates("email", uniqueness={"case_sensitive": False})
        user_class(email="ada@example.com").save(session)

        assert user_class(email="ADA@Example.com").valid() is False

    def test_allow_nil(self, user_class, session, bound):
        user_class.validates("email", uniqueness=True, allow_nil=True)
        user_class(email=None).save(session)

        assert user_class(email=None).valid() is True

    def test_only_if_modified_skips_query(self, user_class, session):
        user_class.validates("email", uniqueness={"only_if_modified": True})
        user = user_class(email="ada@example.com")
        user.save(session)

        with patch.object(Dataset, "count", return_value=0) as count:
            user.name = "Ada"
            assert user.valid() is True
            count.assert_not_called()

            user.email = "ada@example.org"
            assert user.valid() is True
            count.assert_called_once()

    def test_only_if_modified_still_checks_new_records(self, user_class, session, bound):
        user_class.validates("email", uniqueness={"only_if_modified": True})
        user_class(email="ada@example.com").save(session)

        with patch.object(Dataset, "count", return_value=1) as count:
            assert user_class(email="ada@example.com").valid() is False
            count.assert_called_once()

    def test_requires_a_session(self, user_class):
        user_class.validates("email", uniqueness=True)

        with pytest.raises(ConfigurationError, match="No session available"):
            user_class(email="ada@example.com").valid()

    def test_setup_records_model(self, user_class):
        [validator] = user_class.validates_with(UniquenessValidator, attributes=["email"])

        assert validator.model is user_class
        assert validator.options.scope == []
        assert validator.options.case_sensitive is True


class TestDataset:
    """Tests for the Dataset query builder used by the uniqueness rule."""

    def test_filter_exclude_count(self, user_class, session):
        for email, team in [("a@x", "red"), ("b@x", "red"), ("c@x", None)]:
            user_class(email=email, team=team).save(session)

        dataset = user_class.dataset(session)

        assert dataset.count() == 3
        assert dataset.filter(team="red").count() == 2
        assert dataset.filter(team=None).count() == 1
        assert dataset.filter(team="red").exclude(email="a@x").count() == 1
        assert dataset.filter(user_class.email == "b@x").first().team == "red"
        assert len(dataset.exclude().all()) == 3
