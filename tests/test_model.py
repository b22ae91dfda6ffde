"""
Tests for the host model layer.
"""

from typing import Optional

import pytest
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from activealchemy.config import configure
from activealchemy.exceptions import ConfigurationError, HookFailed
from activealchemy.model import ActiveModelMixin, dualmethod
from activealchemy.naming import ModelName, camelize, humanize, pluralize, underscore


@pytest.fixture
def note_class(base):
    class Note(ActiveModelMixin, base):
        __tablename__ = "notes"

        id: Mapped[int] = mapped_column(primary_key=True)
        title: Mapped[Optional[str]] = mapped_column(String(50))
        body: Mapped[Optional[str]] = mapped_column(String(200))

    return Note


@pytest.fixture
def membership_class(base):
    class Membership(ActiveModelMixin, base):
        __tablename__ = "memberships"

        user_id: Mapped[int] = mapped_column(primary_key=True)
        group_id: Mapped[int] = mapped_column(primary_key=True)

    return Membership


class TestPersistenceState:
    """Tests for is_new, pk and friends."""

    def test_new_record(self, note_class):
        note = note_class(title="draft")

        assert note.is_new
        assert not note.persisted()
        assert note.to_key() is None
        assert note.to_param() is None

    def test_saved_record(self, note_class, make_session):
        note = note_class(title="draft")
        note.save(make_session())

        assert not note.is_new
        assert note.persisted()
        assert note.pk == note.id
        assert note.pk_hash == {"id": note.id}
        assert note.to_key() == [note.id]
        assert note.to_param() == str(note.id)

    def test_composite_key(self, membership_class, make_session):
        membership = membership_class(user_id=1, group_id=7)
        membership.save(make_session())

        assert membership.pk == (1, 7)
        assert membership.pk_hash == {"user_id": 1, "group_id": 7}
        assert membership.to_param() == "1-7"

    def test_changed_columns(self, note_class, make_session):
        note = note_class(title="draft")
        note.save(make_session())
        assert note.changed_columns == []

        note.body = "text"
        assert note.changed_columns == ["body"]

    def test_destroy(self, note_class, make_session, row_count):
        session = make_session()
        note = note_class(title="draft")
        note.save(session)

        assert note.destroy(session) is note
        assert row_count(session, note_class) == 0

    def test_save_without_commit(self, note_class, make_session, row_count):
        session = make_session()
        note_class(title="draft").save(session, commit=False)
        session.rollback()

        assert row_count(session, note_class) == 0


class TestSessions:
    def test_missing_session(self, note_class):
        with pytest.raises(ConfigurationError, match="No session available for Note"):
            note_class().save()

    def test_bound_session(self, note_class, make_session, row_count):
        session = make_session()
        note_class.bind_session(session)
        try:
            note_class(title="draft").save()
        finally:
            note_class.bind_session(None)

        assert row_count(session, note_class) == 1


class TestLifecycleHooks:
    """Tests for overriding the plain lifecycle hook points."""

    def test_hook_not_proceeding_fails(self, base, make_session, row_count):
        class Locked(ActiveModelMixin, base):
            __tablename__ = "locked"

            id: Mapped[int] = mapped_column(primary_key=True)

            def around_save(self, proceed):
                return False

        session = make_session()
        with pytest.raises(HookFailed, match="the around_save hook failed"):
            Locked().save(session)
        assert row_count(session, Locked) == 0

    def test_raise_on_save_failure_setting(self, base, make_session):
        class Locked(ActiveModelMixin, base):
            __tablename__ = "locked"

            id: Mapped[int] = mapped_column(primary_key=True)

            def around_destroy(self, proceed):
                return None

        configure(raise_on_save_failure=False)
        session = make_session()
        record = Locked().save(session)

        assert record.destroy(session) is None


class TestDualmethod:
    def test_class_and_instance_halves(self):
        class Widget:
            @dualmethod
            def describe(self):
                return "instance"

            @describe.classmethod
            def describe(cls):
                return f"class {cls.__name__}"

        assert Widget.describe() == "class Widget"
        assert Widget().describe() == "instance"

    def test_override_keeps_class_half(self):
        class Widget(ActiveModelMixin):
            @dualmethod
            def describe(self):
                return "instance"

            @describe.classmethod
            def describe(cls):
                return "class"

        class Gadget(Widget):
            def describe(self):
                return "gadget"

        assert isinstance(Gadget.__dict__["describe"], dualmethod)
        assert Gadget.describe() == "class"
        assert Gadget().describe() == "gadget"


class TestNaming:
    def test_inflections(self):
        assert camelize("only_integer") == "OnlyInteger"
        assert camelize("myapp/validators/email") == "myapp.validators.Email"
        assert underscore("BlogPost") == "blog_post"
        assert underscore("HTTPRequest") == "http_request"
        assert humanize("author_id") == "Author"
        assert pluralize("category") == "categories"
        assert pluralize("status") == "statuses"
        assert pluralize("person") == "people"
        assert pluralize("equipment") == "equipment"

    def test_model_name(self, note_class):
        name = note_class.model_name()

        assert isinstance(name, ModelName)
        assert str(name) == "Note"
        assert name.plural == "notes"
        assert name.route_key == "notes"
        assert name.human == "Note"
        assert note_class.model_name() is name

    def test_uncountable_route_key(self):
        class Equipment:
            pass

        assert ModelName.for_class(Equipment).route_key == "equipment_index"
