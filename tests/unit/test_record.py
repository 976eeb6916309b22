"""Unit tests for active records."""

import json
from datetime import date, datetime

import pytest

from arbor.dialects import SQLiteProfile
from arbor.exceptions import InvalidCastError, RecordNotFoundError, RecordStateError
from arbor.query.builder import QueryBuilder
from arbor.records import Record, RecordQuery
from arbor.records.casts import cast_value, prepare_value
from arbor.records.record import pluralize, snake_case
from arbor.schema.blueprint import Blueprint
from arbor.types import Dialect


class User(Record):
    fillable = ("name", "email", "is_admin", "settings")
    hidden = ("password",)
    casts = {"is_admin": "bool", "settings": "json"}


class Token(Record):
    key_type = "uuid"
    incrementing = False
    timestamps = False
    fillable = ("label",)


class Note(Record):
    guarded = ()


class BadCast(Record):
    guarded = ()
    casts = {"value": "money"}


@pytest.fixture
def schema(executor):
    """Create the record tables and bind the executor."""
    profile = SQLiteProfile()

    users = Blueprint("users")
    users.id()
    users.string("name")
    users.string("email").nullable().unique()
    users.string("password").nullable()
    users.boolean("is_admin").default(False)
    users.json("settings").nullable()
    users.timestamps()

    tokens = Blueprint("tokens")
    tokens.uuid_primary()
    tokens.string("label")

    for blueprint in (users, tokens):
        for sql in blueprint.to_statements(profile):
            executor.execute(sql)

    Record.set_executor(executor)
    yield executor
    Record.set_executor(None)


class TestNaming:
    """Tests for table naming helpers."""

    def test_snake_case(self):
        """Test class names become snake case."""
        assert snake_case("BlogPost") == "blog_post"
        assert snake_case("User") == "user"

    def test_pluralize(self):
        """Test simple English plurals."""
        assert pluralize("user") == "users"
        assert pluralize("category") == "categories"
        assert pluralize("day") == "days"
        assert pluralize("box") == "boxes"

    def test_default_table(self):
        """Test the table defaults to the plural snake-case class name."""
        assert User.get_table() == "users"
        assert Note.get_table() == "notes"

    def test_foreign_key_name(self):
        """Test the referencing column name."""
        assert User.foreign_key_name() == "user_id"


class TestMassAssignment:
    """Tests for fill() and the fillable/guarded rules."""

    def test_unknown_key_ignored(self):
        """Test keys outside fillable are skipped."""
        user = User({"name": "A", "role": "admin"})
        assert user.get_attribute("name") == "A"
        assert user.get_attribute("role") is None
        assert not user.has_attribute("role")

    def test_guarded_everything_by_default(self):
        """Test a record without fillable accepts nothing by default."""

        class Locked(Record):
            pass

        assert Locked({"name": "A"}).get_attributes() == {}

    def test_unguarded_record(self):
        """Test an empty guard list accepts any public key."""
        note = Note({"body": "x", "_secret": 1})
        assert note.get_attributes() == {"body": "x"}

    def test_force_fill(self):
        """Test force_fill bypasses the guard."""
        user = User().force_fill({"password": "hash"})
        assert user.get_attribute("password") == "hash"

    def test_keyword_arguments(self):
        """Test attributes can be passed as keywords."""
        assert User(name="A").name == "A"


class TestAttributes:
    """Tests for attribute access and casts."""

    def test_attribute_access(self):
        """Test attributes are readable and writable as properties."""
        user = User()
        user.name = "Ada"
        assert user.name == "Ada"
        assert user.get_attributes() == {"name": "Ada"}
        del user.name
        assert user.get_attribute("name") is None

    def test_missing_attribute_raises(self):
        """Test unknown attribute names raise AttributeError."""
        with pytest.raises(AttributeError):
            User().nickname

    def test_casts(self):
        """Test read and write casts."""
        user = User(is_admin=True, settings={"theme": "dark"})
        assert user.get_attributes()["is_admin"] == 1
        assert user.get_attributes()["settings"] == '{"theme": "dark"}'
        assert user.is_admin is True
        assert user.settings == {"theme": "dark"}

    def test_unknown_cast(self):
        """Test an unknown cast name raises."""
        with pytest.raises(InvalidCastError):
            BadCast(value=1)

    def test_uuid_key_generated(self):
        """Test uuid keys are generated on construction."""
        token = Token(label="t")
        assert isinstance(token.id, str)
        assert len(token.id) == 36

    def test_invalid_key_type(self):
        """Test key_type is validated."""

        class Odd(Record):
            key_type = "float"

        with pytest.raises(RecordStateError):
            Odd()

    def test_column_named_like_setting(self):
        """Test columns named like class settings are stored as attributes."""
        note = Note(title="a")
        note.hidden = 1
        note.table = "oak"

        assert note.get_attributes() == {"title": "a", "hidden": 1, "table": "oak"}
        assert note.hidden == 1
        assert note.table == "oak"
        assert Note.hidden == ()
        assert Note.get_table() == "notes"
        assert note.to_dict() == {"title": "a", "hidden": 1, "table": "oak"}

        del note.hidden
        assert not note.has_attribute("hidden")
        assert Note.hidden == ()

    def test_setting_read_without_column(self):
        """Test class settings are still readable when no column shadows them."""
        assert User().hidden == ("password",)
        assert User().casts["is_admin"] == "bool"

    def test_properties_are_not_columns(self):
        """Test read-only properties reject assignment."""
        note = Note()
        with pytest.raises(AttributeError):
            note.exists = True
        assert note.get_attributes() == {}
        assert note.exists is False


class TestCastFunctions:
    """Tests for the cast helpers."""

    def test_cast_values(self):
        """Test each cast family."""
        assert cast_value("int", "42") == 42
        assert cast_value("integer", "4.0") == 4
        assert cast_value("float", "1.5") == 1.5
        assert cast_value("string", 5) == "5"
        assert cast_value("bool", "false") is False
        assert cast_value("bool", "yes") is True
        assert cast_value("json", "[1, 2]") == [1, 2]
        assert cast_value("object", '{"a": 1}').a == 1
        assert cast_value("datetime", "2024-01-02 03:04:05") == datetime(2024, 1, 2, 3, 4, 5)
        assert cast_value("date", "2024-01-02 03:04:05") == date(2024, 1, 2)

    def test_none_is_not_cast(self):
        """Test None passes through every cast."""
        assert cast_value("int", None) is None
        assert prepare_value("json", None, "%Y") is None

    def test_prepare_values(self):
        """Test write casts."""
        fmt = "%Y-%m-%d %H:%M:%S"
        assert prepare_value("datetime", datetime(2024, 1, 2, 3, 4, 5), fmt) == "2024-01-02 03:04:05"
        assert prepare_value("date", date(2024, 1, 2), fmt) == "2024-01-02"
        assert prepare_value("array", [1, 2], fmt) == "[1, 2]"
        assert prepare_value("json", "[1]", fmt) == "[1]"
        assert prepare_value("boolean", False, fmt) == 0

    def test_unknown_cast_name(self):
        """Test unknown cast names raise on both paths."""
        with pytest.raises(InvalidCastError):
            cast_value("money", 1)
        with pytest.raises(InvalidCastError):
            prepare_value("money", 1, "%Y")


class TestPersistence:
    """Tests for saving, loading and deleting records on SQLite."""

    def test_create(self, schema):
        """Test create() inserts and captures the generated key."""
        user = User.create({"name": "Ada", "email": "ada@example.com"})
        assert user.exists
        assert user.was_recently_created
        assert user.id == 1
        assert user.created_at is not None
        assert user.created_at == user.updated_at
        assert user.is_clean()

    def test_find(self, schema):
        """Test find() hydrates a persisted record."""
        User.create(name="Ada")
        user = User.find(1)
        assert isinstance(user, User)
        assert user.exists
        assert user.name == "Ada"
        assert user.is_admin is False
        assert User.find(99) is None

    def test_find_or_fail(self, schema):
        """Test find_or_fail raises for a missing key."""
        with pytest.raises(RecordNotFoundError, match="No User record found for key 5"):
            User.find_or_fail(5)

    def test_not_found_is_lookup_error(self, schema):
        """Test the not-found error is a LookupError."""
        with pytest.raises(LookupError):
            User.find_or_fail(5)

    def test_all_and_where(self, schema):
        """Test class-level reads return records."""
        User.create(name="A")
        User.create(name="B")
        assert [u.name for u in User.all()] == ["A", "B"]
        assert [u.name for u in User.where("name", "B")] == ["B"]
        assert [u.name for u in User.where("id", ">", 0)] == ["A", "B"]

    def test_query_returns_record_query(self, schema):
        """Test query() chains like a builder."""
        User.create(name="A")
        User.create(name="B")
        query = User.query()
        assert isinstance(query, RecordQuery)
        assert query.where("name", "!=", "A").first().name == "B"
        assert User.query().count() == 2

    def test_dirty_tracking(self, schema):
        """Test dirty state across fill and save."""
        User.create(name="A")
        user = User.find(1)

        user.fill({"name": "A"})
        assert not user.is_dirty("name")

        user.fill({"name": "B"})
        assert user.is_dirty("name")
        assert user.is_dirty()
        assert user.get_dirty() == {"name": "B"}
        assert user.get_original("name") == "A"

        assert user.save() is True
        assert not user.is_dirty("name")
        assert user.get_original("name") == "B"
        assert "name" in user.get_changes()
        assert user.was_changed("name")

    def test_update_persists(self, schema):
        """Test update() writes only to its own row."""
        first = User.create(name="A")
        User.create(name="B")
        assert first.update({"name": "C"}) is True
        assert [u.name for u in User.all()] == ["C", "B"]

    def test_update_refreshes_updated_at(self, schema):
        """Test a dirty save stamps updated_at."""
        user = User.create(name="A")
        user.updated_at = "2000-01-01 00:00:00"
        user.save()
        user.name = "B"
        user.save()
        assert user.updated_at != "2000-01-01 00:00:00"
        assert User.find(1).updated_at == user.updated_at

    def test_clean_save_is_noop(self, schema):
        """Test saving a clean record runs no statement."""
        user = User.create(name="A")
        schema.enable_query_log()
        assert user.save() is True
        assert schema.get_query_log() == []

    def test_update_missing_row(self, schema):
        """Test an update that matches no row returns False."""
        user = User.create(name="A")
        QueryBuilder(schema, "users").where("id", user.id).delete()
        user.name = "B"
        assert user.save() is False
        assert user.is_dirty("name")

    def test_update_unsaved(self):
        """Test update() on a new record does nothing."""
        assert User(name="A").update(name="B") is False

    def test_delete(self, schema):
        """Test delete() removes the row and blocks re-insert."""
        user = User.create(name="A")
        assert user.delete() is True
        assert not user.exists
        assert User.find(1) is None
        assert user.delete() is False

        with pytest.raises(RecordStateError, match="was deleted"):
            user.save()

        user.unset_attribute("id")
        assert user.save() is True
        assert user.id == 2

    def test_delete_unsaved(self):
        """Test deleting a new record returns False."""
        assert User(name="A").delete() is False

    def test_refresh(self, schema):
        """Test refresh() reloads the row."""
        user = User.create(name="A")
        QueryBuilder(schema, "users").where("id", user.id).update({"name": "Z"})
        assert user.refresh().name == "Z"
        assert user.is_clean()

    def test_refresh_unsaved(self):
        """Test refresh() needs a persisted record."""
        with pytest.raises(RecordStateError):
            User().refresh()

    def test_update_or_create(self, schema):
        """Test update_or_create creates once and then updates."""
        created = User.update_or_create({"email": "a@example.com"}, {"name": "A"})
        assert created.id == 1
        updated = User.update_or_create({"email": "a@example.com"}, {"name": "B"})
        assert updated.id == 1
        assert updated.name == "B"
        assert User.query().count() == 1

    def test_uuid_records(self, schema):
        """Test records with generated uuid keys."""
        token = Token.create(label="api")
        found = Token.find(token.id)
        assert found.label == "api"
        assert found == token

    def test_touch(self, schema):
        """Test touch() stamps updated_at."""
        user = User.create(name="A")
        user.force_fill({"updated_at": "2000-01-01 00:00:00"}).save()
        assert user.touch() is True
        assert user.updated_at != "2000-01-01 00:00:00"

    def test_insert_reads_key_with_returning(self, recording_executor):
        """Test PostgreSQL inserts ask for the generated key with RETURNING."""

        class Draft(Record):
            guarded = ()
            timestamps = False

        recording_executor.dialect = Dialect.POSTGRESQL
        recording_executor.next_insert_id = "7"
        Draft.set_executor(recording_executor)

        draft = Draft.create(title="a")

        assert recording_executor.statements == [("INSERT INTO drafts (title) VALUES (?) RETURNING id", ["a"])]
        assert draft.id == 7

    def test_hidden_column_round_trip(self, schema):
        """Test a column named hidden is saved and read back as a value."""
        blueprint = Blueprint("notes")
        blueprint.id()
        blueprint.string("title")
        blueprint.integer("hidden").nullable()
        blueprint.timestamps()
        for sql in blueprint.to_statements(SQLiteProfile()):
            schema.execute(sql)

        note = Note(title="a")
        note.hidden = 1
        note.save()

        rows = QueryBuilder(schema, "notes").select("hidden").get()
        assert rows == [{"hidden": 1}]

        found = Note.find(note.id)
        assert found.hidden == 1
        assert found.to_dict()["hidden"] == 1

        found.hidden = 0
        assert found.get_dirty() == {"hidden": 0}
        found.save()
        assert Note.find(note.id).hidden == 0


class TestSerialization:
    """Tests for to_dict and to_json."""

    def test_hidden(self):
        """Test hidden keys are removed and casts applied."""
        user = User(name="A", is_admin=1).force_fill({"password": "x"})
        assert user.to_dict() == {"name": "A", "is_admin": True}

    def test_visible(self):
        """Test a visible allowlist wins over everything else."""

        class Public(Record):
            guarded = ()
            visible = ("name",)

        assert Public(name="A", email="e").to_dict() == {"name": "A"}

    def test_relations_serialized(self):
        """Test cached relations are serialized recursively."""
        user = User(name="A")
        user.set_relation("friends", [User(name="B"), User(name="C")])
        user.set_relation("manager", User(name="D"))
        user.set_relation("meta", {"x": 1})
        assert user.to_dict() == {
            "name": "A",
            "friends": [{"name": "B"}, {"name": "C"}],
            "manager": {"name": "D"},
            "meta": {"x": 1},
        }

    def test_to_json(self):
        """Test JSON output handles dates."""
        user = User(name="A", settings=[1])
        user.set_relation("seen", datetime(2024, 1, 2, 3, 4, 5))
        assert json.loads(user.to_json()) == {"name": "A", "settings": [1], "seen": "2024-01-02 03:04:05"}
        assert str(user) == user.to_json()

    def test_repr(self):
        """Test the repr names class, key and state."""
        assert repr(User(name="A")) == "<User id=None new>"
