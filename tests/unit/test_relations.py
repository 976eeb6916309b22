"""Unit tests for record relations."""

import pytest

from arbor.dialects import SQLiteProfile
from arbor.exceptions import RecordStateError
from arbor.records import BelongsTo, BelongsToMany, HasMany, Record
from arbor.schema.blueprint import Blueprint


class User(Record):
    fillable = ("name",)

    def posts(self):
        return self.has_many(Post)

    def roles(self):
        return self.belongs_to_many(Role)


class Post(Record):
    fillable = ("title", "published")

    def author(self):
        return self.belongs_to(User, "user_id", relation="author")


class Role(Record):
    fillable = ("name",)


@pytest.fixture
def schema(executor):
    """Create users, posts, roles and the role_user pivot table."""
    profile = SQLiteProfile()

    users = Blueprint("users")
    users.id()
    users.string("name")
    users.timestamps()

    posts = Blueprint("posts")
    posts.id()
    posts.foreign_id("user_id").nullable()
    posts.string("title")
    posts.boolean("published").default(False)
    posts.timestamps()
    posts.foreign("user_id", "users", on_delete="cascade")

    roles = Blueprint("roles")
    roles.id()
    roles.string("name")
    roles.timestamps()

    role_user = Blueprint("role_user")
    role_user.foreign_id("role_id")
    role_user.foreign_id("user_id")
    role_user.integer("level").nullable()
    role_user.primary(["role_id", "user_id"])

    for blueprint in (users, posts, roles, role_user):
        for sql in blueprint.to_statements(profile):
            executor.execute(sql)

    Record.set_executor(executor)
    yield executor
    Record.set_executor(None)


@pytest.fixture
def ada(schema):
    return User.create(name="Ada")


@pytest.fixture
def roles(schema):
    return [Role.create(name=name) for name in ("admin", "editor", "viewer")]


class TestHasMany:
    """Tests for one-to-many relations."""

    def test_relation_type_and_keys(self, ada):
        """Test default key names."""
        relation = ada.posts()
        assert isinstance(relation, HasMany)
        assert relation.foreign_key == "user_id"
        assert relation.local_key == "id"

    def test_create_and_get(self, ada):
        """Test related records are created pointing at the parent."""
        post = ada.posts().create({"title": "Hello"})
        assert post.user_id == ada.id
        assert post.exists

        posts = ada.posts().get()
        assert [p.title for p in posts] == ["Hello"]
        assert all(isinstance(p, Post) for p in posts)

    def test_constraints(self, ada):
        """Test where/order/limit/count chain on the relation."""
        other = User.create(name="Bob")
        ada.posts().create({"title": "a", "published": True})
        ada.posts().create({"title": "b"})
        other.posts().create({"title": "c"})

        assert ada.posts().count() == 2
        assert ada.posts().where("published", 1).count() == 1
        assert ada.posts().order_by("title", "desc").first().title == "b"
        assert [p.title for p in ada.posts().limit(1).get()] == ["a"]
        assert other.posts().exists()

    def test_relation_is_reusable(self, ada):
        """Test get() and first() do not consume the relation query."""
        ada.posts().create({"title": "a"})
        relation = ada.posts()
        assert relation.first().title == "a"
        assert len(relation.get()) == 1

    def test_save_and_save_many(self, ada):
        """Test saving existing records through the relation."""
        loose = Post(title="loose")
        ada.posts().save(loose)
        ada.posts().save_many([Post(title="x"), Post(title="y")])
        assert loose.user_id == ada.id
        assert ada.posts().count() == 3

    def test_update_and_delete(self, ada):
        """Test bulk update and delete are limited to the parent's rows."""
        other = User.create(name="Bob")
        ada.posts().create({"title": "a"})
        ada.posts().create({"title": "b"})
        other.posts().create({"title": "c"})

        assert ada.posts().update({"published": 1}) == 2
        assert Post.query().where("published", 1).count() == 2
        assert ada.posts().delete() == 2
        assert Post.query().count() == 1

    def test_unsaved_parent(self, schema):
        """Test an unsaved parent has no related rows and cannot create any."""
        user = User(name="new")
        assert user.posts().get() == []
        with pytest.raises(RecordStateError):
            user.posts().make({"title": "x"})

    def test_to_sql(self, ada):
        """Test the constrained query can be inspected."""
        assert ada.posts().to_sql() == "SELECT * FROM posts WHERE user_id = ?"


class TestBelongsTo:
    """Tests for inverse relations."""

    def test_get_results(self, ada):
        """Test the owner is loaded through the foreign key."""
        post = ada.posts().create({"title": "a"})
        relation = post.author()
        assert isinstance(relation, BelongsTo)
        assert relation.get_results() == ada

    def test_missing_owner(self, schema):
        """Test a null foreign key has no owner."""
        post = Post.create(title="orphan")
        assert post.author().get_results() is None

    def test_associate_and_dissociate(self, ada):
        """Test associate() sets the key and caches the owner."""
        post = Post(title="a")
        post.author().associate(ada)
        assert post.user_id == ada.id
        assert post.get_relation("author", lambda: None) is ada
        post.save()
        assert Post.find(post.id).user_id == ada.id

        post.author().dissociate()
        assert post.user_id is None
        assert post.relation_loaded("author")
        assert post.get_attribute("author") is None


class TestRelationCache:
    """Tests for explicit relation caching."""

    def test_get_relation_memoizes(self, ada):
        """Test the loader runs only on first access."""
        calls = []

        def loader():
            calls.append(1)
            return ada.posts().get()

        assert ada.get_relation("posts", loader) == []
        assert ada.get_relation("posts", loader) == []
        assert len(calls) == 1
        assert ada.relation_loaded("posts")

        ada.unset_relation("posts")
        assert not ada.relation_loaded("posts")

    def test_load_and_serialize(self, ada):
        """Test load() caches relations and to_dict() includes them."""
        ada.posts().create({"title": "a"})
        ada.load("posts")
        assert [p.title for p in ada.get_attribute("posts")] == ["a"]
        data = ada.to_dict()
        assert data["posts"][0]["title"] == "a"
        assert data["name"] == "Ada"

    def test_load_unknown(self, ada):
        """Test load() rejects names that are not relations."""
        with pytest.raises(RecordStateError):
            ada.load("nothing")
        with pytest.raises(RecordStateError):
            ada.load("save")


class TestBelongsToMany:
    """Tests for many-to-many relations."""

    def test_defaults(self, ada):
        """Test pivot table and key names."""
        relation = ada.roles()
        assert isinstance(relation, BelongsToMany)
        assert relation.table == "role_user"
        assert relation.foreign_pivot_key == "user_id"
        assert relation.related_pivot_key == "role_id"

    def test_attach_and_get(self, ada, roles):
        """Test attached records come back with their pivot row."""
        admin, editor, _ = roles
        ada.roles().attach([admin, editor.id])

        found = ada.roles().order_by("roles.id").get()
        assert [r.name for r in found] == ["admin", "editor"]
        assert all(isinstance(r, Role) for r in found)
        assert found[0].get_attribute("pivot") == {"user_id": ada.id, "role_id": admin.id}
        assert not found[0].has_attribute("pivot_role_id")

    def test_with_pivot(self, ada, roles):
        """Test extra pivot columns."""
        admin = roles[0]
        ada.roles().attach({admin.id: {"level": 3}})
        role = ada.roles().with_pivot("level").first()
        assert role.get_attribute("pivot")["level"] == 3
        assert ada.roles().where_pivot("level", ">", 2).count() == 1

    def test_detach(self, ada, roles):
        """Test detaching some or all links."""
        ada.roles().attach([r.id for r in roles])
        assert ada.roles().detach(roles[0].id) == 1
        assert ada.roles().count() == 2
        assert ada.roles().detach([]) == 0
        assert ada.roles().detach() == 2
        assert not ada.roles().exists()

    def test_sync(self, ada, roles):
        """Test sync attaches, detaches and updates."""
        admin, editor, viewer = roles
        ada.roles().attach([admin.id, editor.id])

        changes = ada.roles().sync({editor.id: {"level": 2}, viewer.id: {}})
        assert changes == {"attached": [viewer.id], "detached": [admin.id], "updated": [editor.id]}
        assert sorted(ada.roles().current_ids()) == [editor.id, viewer.id]

    def test_sync_without_detaching(self, ada, roles):
        """Test sync can leave existing links alone."""
        ada.roles().attach(roles[0].id)
        changes = ada.roles().sync_without_detaching([roles[1].id])
        assert changes["detached"] == []
        assert ada.roles().count() == 2

    def test_toggle(self, ada, roles):
        """Test toggle flips each link."""
        admin, editor, _ = roles
        ada.roles().attach(admin.id)
        changes = ada.roles().toggle([admin.id, editor.id])
        assert changes == {"attached": [editor.id], "detached": [admin.id]}
        assert ada.roles().current_ids() == [editor.id]

    def test_update_existing_pivot(self, ada, roles):
        """Test updating one pivot row."""
        ada.roles().attach(roles[0].id)
        assert ada.roles().update_existing_pivot(roles[0], {"level": 9}) == 1
        assert ada.roles().with_pivot("level").first().get_attribute("pivot")["level"] == 9

    def test_unsaved_parent(self, schema):
        """Test an unsaved parent cannot change links."""
        with pytest.raises(RecordStateError):
            User(name="new").roles().attach(1)
