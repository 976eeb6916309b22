"""
Active record base class.

A ``Record`` subclass maps one table. Instances hold the row's attributes,
a snapshot of the values last loaded or saved, and a cache of loaded
relations::

    class User(Record):
        fillable = ("name", "email")
        hidden = ("password",)
        casts = {"is_admin": "bool", "settings": "json"}

        def posts(self):
            return self.has_many(Post)

    user = User.create({"name": "Ada", "email": "ada@example.com"})
    user.name = "Ada Lovelace"
    user.save()
"""

import json
import re
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Optional, TypeVar

from arbor.config import get_config
from arbor.exceptions import RecordNotFoundError, RecordStateError
from arbor.logger import get_logger
from arbor.query.builder import QueryBuilder
from arbor.records.casts import cast_value, prepare_value
from arbor.records.query import RecordQuery
from arbor.records.relations import BelongsTo, BelongsToMany, HasMany, Relation
from arbor.storage.database import get_executor as get_default_executor

if TYPE_CHECKING:
    from arbor.storage.executor import Executor

logger = get_logger(__name__)

R = TypeVar("R", bound="Record")

KEY_TYPES = ("int", "string", "uuid")


def snake_case(name: str) -> str:
    """``BlogPost`` -> ``blog_post``"""
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def pluralize(word: str) -> str:
    """English plural for table names: ``category`` -> ``categories``."""
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


class Record:
    """Base class for active records.

    Class attributes configure the mapping:

    - ``table``: table name, defaults to the snake-case plural of the class name
    - ``primary_key`` / ``key_type`` / ``incrementing``: key column, its type
      ("int", "string" or "uuid") and whether the database generates it
    - ``timestamps``: maintain ``created_at``/``updated_at`` on save
    - ``fillable`` / ``guarded``: mass-assignment allow and deny lists;
      ``guarded = ("*",)`` denies everything not explicitly fillable
    - ``hidden`` / ``visible``: keys excluded from / kept in ``to_dict()``
    - ``casts``: attribute name to cast name, see ``arbor.records.casts``
    """

    table: ClassVar[Optional[str]] = None
    primary_key: ClassVar[str] = "id"
    key_type: ClassVar[str] = "int"
    incrementing: ClassVar[bool] = True
    timestamps: ClassVar[bool] = True
    created_at_column: ClassVar[str] = "created_at"
    updated_at_column: ClassVar[str] = "updated_at"
    date_format: ClassVar[Optional[str]] = None
    fillable: ClassVar[tuple] = ()
    guarded: ClassVar[tuple] = ("*",)
    hidden: ClassVar[tuple] = ()
    visible: ClassVar[tuple] = ()
    casts: ClassVar[dict] = {}

    _executor: ClassVar[Optional["Executor"]] = None

    def __init__(self, attributes: Optional[Mapping] = None, **kwargs: Any) -> None:
        """Create a new, unsaved record.

        Args:
            attributes: Values passed through ``fill()``
            **kwargs: More values passed through ``fill()``
        """
        self._boot()
        cls = type(self)
        if cls.key_type == "uuid":
            self._attributes[cls.primary_key] = str(uuid.uuid4())
        if attributes:
            self.fill(attributes)
        if kwargs:
            self.fill(kwargs)

    def _boot(self) -> None:
        if type(self).key_type not in KEY_TYPES:
            raise RecordStateError(f"{type(self).__name__}.key_type must be one of {KEY_TYPES}")
        self._attributes: dict[str, Any] = {}
        self._original: dict[str, Any] = {}
        self._changes: dict[str, Any] = {}
        self._relations: dict[str, Any] = {}
        self._exists = False
        self._deleted = False
        self._was_recently_created = False

    # ------------------------------------------------------------------
    # Class-level configuration
    # ------------------------------------------------------------------

    @classmethod
    def get_table(cls) -> str:
        return cls.table or pluralize(snake_case(cls.__name__))

    @classmethod
    def set_executor(cls, executor: Optional["Executor"]) -> None:
        """Bind an executor to this class and its subclasses."""
        cls._executor = executor

    @classmethod
    def get_executor(cls) -> "Executor":
        """Executor bound with ``set_executor``, else the global one."""
        if cls._executor is not None:
            return cls._executor
        return get_default_executor()

    @classmethod
    def get_date_format(cls) -> str:
        return cls.date_format or get_config().record.date_format

    @classmethod
    def foreign_key_name(cls) -> str:
        """Column other tables use to reference this record: ``user_id``."""
        return f"{snake_case(cls.__name__)}_{cls.primary_key}"

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    @classmethod
    def query(cls: type[R]) -> RecordQuery:
        return RecordQuery(cls)

    @classmethod
    def all(cls: type[R]) -> list[R]:
        return cls.query().get()

    @classmethod
    def find(cls: type[R], key: Any) -> Optional[R]:
        return cls.query().find(key)

    @classmethod
    def find_or_fail(cls: type[R], key: Any) -> R:
        """Find a record by primary key.

        Raises:
            RecordNotFoundError: If no row has that key
        """
        record = cls.find(key)
        if record is None:
            raise RecordNotFoundError(cls.__name__, key)
        return record

    @classmethod
    def where(cls: type[R], *args: Any) -> list[R]:
        """Return every record matching one condition.

        Accepts the same arguments as ``QueryBuilder.where``; use
        ``query().where(...)`` to keep chaining.
        """
        return cls.query().where(*args).get()

    @classmethod
    def create(cls: type[R], attributes: Optional[Mapping] = None, **kwargs: Any) -> R:
        """Fill and insert a new record."""
        record = cls(attributes, **kwargs)
        record.save()
        return record

    @classmethod
    def update_or_create(cls: type[R], search: Mapping, values: Optional[Mapping] = None) -> R:
        """Update the first record matching ``search``, or create one.

        Args:
            search: Column values identifying the record
            values: Values to fill on the found or created record
        """
        values = dict(values or {})
        record = cls.query().where(dict(search)).first()
        if record is None:
            return cls.create({**search, **values})
        record.fill(values)
        record.save()
        return record

    @classmethod
    def new_from_row(cls: type[R], row: Mapping) -> R:
        """Hydrate a persisted record from a result row."""
        record = cls.__new__(cls)
        record._boot()
        record._attributes = dict(row)
        record._exists = True
        record.sync_original()
        return record

    def new_query(self) -> RecordQuery:
        return type(self).query()

    def refresh(self) -> "Record":
        """Reload attributes from the database and drop cached relations."""
        if not self._exists:
            raise RecordStateError(f"Cannot refresh an unsaved {type(self).__name__}")
        key = self._key_for_save_query()
        row = QueryBuilder(self.get_executor(), self.get_table()).where(type(self).primary_key, key).first()
        if row is None:
            raise RecordNotFoundError(type(self).__name__, key)
        self._attributes = dict(row)
        self._relations.clear()
        self.sync_original()
        return self

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def was_recently_created(self) -> bool:
        return self._was_recently_created

    def get_key(self) -> Any:
        return self._attributes.get(type(self).primary_key)

    def get_attribute(self, key: str) -> Any:
        """Return an attribute with its cast applied, or a cached relation.

        Missing keys return None.
        """
        if key in self._attributes:
            value = self._attributes[key]
            cast = type(self).casts.get(key)
            return cast_value(cast, value) if cast else value
        return self._relations.get(key)

    def set_attribute(self, key: str, value: Any) -> "Record":
        cast = type(self).casts.get(key)
        if cast:
            value = prepare_value(cast, value, self.get_date_format())
        self._attributes[key] = value
        return self

    def unset_attribute(self, key: str) -> None:
        self._attributes.pop(key, None)
        self._relations.pop(key, None)

    def get_attributes(self) -> dict:
        """Raw attribute values, without casts."""
        return dict(self._attributes)

    def set_raw_attributes(self, attributes: Mapping, sync: bool = False) -> "Record":
        self._attributes = dict(attributes)
        if sync:
            self.sync_original()
        return self

    def has_attribute(self, key: str) -> bool:
        return key in self._attributes

    def is_fillable(self, key: str) -> bool:
        fillable = type(self).fillable
        if key in fillable:
            return True
        if self.is_guarded(key):
            return False
        return not fillable and not key.startswith("_")

    def is_guarded(self, key: str) -> bool:
        guarded = type(self).guarded
        return "*" in guarded or key in guarded

    def fill(self, attributes: Mapping) -> "Record":
        """Set every fillable attribute; keys that are not fillable are skipped."""
        for key, value in attributes.items():
            if self.is_fillable(key):
                self.set_attribute(key, value)
        return self

    def force_fill(self, attributes: Mapping) -> "Record":
        """Set attributes without the mass-assignment check."""
        for key, value in attributes.items():
            self.set_attribute(key, value)
        return self

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def get_original(self, key: Optional[str] = None, default: Any = None) -> Any:
        if key is None:
            return dict(self._original)
        return self._original.get(key, default)

    def get_dirty(self) -> dict:
        """Attributes that are new or differ from the last loaded/saved snapshot."""
        return {
            key: value
            for key, value in self._attributes.items()
            if key not in self._original or value != self._original[key]
        }

    def is_dirty(self, *keys: str) -> bool:
        dirty = self.get_dirty()
        if not keys:
            return bool(dirty)
        return any(key in dirty for key in keys)

    def is_clean(self, *keys: str) -> bool:
        return not self.is_dirty(*keys)

    def get_changes(self) -> dict:
        """Attributes written by the last successful save."""
        return dict(self._changes)

    def was_changed(self, *keys: str) -> bool:
        if not keys:
            return bool(self._changes)
        return any(key in self._changes for key in keys)

    def sync_original(self) -> "Record":
        self._original = dict(self._attributes)
        return self

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> bool:
        """Insert or update the record.

        Returns:
            True on success, False when an update matched no row

        Raises:
            RecordStateError: If the record was deleted and still has its key
        """
        if self._exists:
            return self._perform_update()
        if self._deleted and self.get_key() is not None:
            raise RecordStateError(
                f"{type(self).__name__} {self.get_key()!r} was deleted; clear its key to insert it again"
            )
        return self._perform_insert()

    def update(self, attributes: Optional[Mapping] = None, **kwargs: Any) -> bool:
        """Fill and save an existing record."""
        if not self._exists:
            return False
        self.fill({**(attributes or {}), **kwargs})
        return self.save()

    def delete(self) -> bool:
        """Delete the record's row.

        Returns:
            True if a row was deleted, False if the record was never saved
            or its row was already gone
        """
        if not self._exists:
            return False

        key = self._key_for_save_query()
        affected = self.new_query().where(type(self).primary_key, key).delete()
        if affected == 0:
            return False

        self._exists = False
        self._deleted = True
        logger.debug(f"Deleted {type(self).__name__} {key!r}")
        return True

    @classmethod
    def fresh_timestamp(cls) -> str:
        return datetime.now().strftime(cls.get_date_format())

    def touch(self) -> bool:
        """Set ``updated_at`` to now and save."""
        cls = type(self)
        if not cls.timestamps:
            return False
        self._attributes[cls.updated_at_column] = self.fresh_timestamp()
        return self.save()

    def _perform_insert(self) -> bool:
        cls = type(self)
        if cls.timestamps:
            now = self.fresh_timestamp()
            for column in (cls.created_at_column, cls.updated_at_column):
                if column not in self._attributes:
                    self._attributes[column] = now

        values = dict(self._attributes)
        generates_key = cls.incrementing and values.get(cls.primary_key) is None
        if generates_key:
            values.pop(cls.primary_key, None)

        generated = self.new_query().insert(values, key=cls.primary_key if generates_key else None)

        if cls.incrementing and self.get_key() is None and generated is not None:
            self._attributes[cls.primary_key] = int(generated) if cls.key_type == "int" else generated

        self._exists = True
        self._deleted = False
        self._was_recently_created = True
        self._changes = dict(self._attributes)
        self.sync_original()
        logger.debug(f"Inserted {cls.__name__} {self.get_key()!r}")
        return True

    def _perform_update(self) -> bool:
        dirty = self.get_dirty()
        if not dirty:
            return True

        cls = type(self)
        if cls.timestamps and cls.updated_at_column not in dirty:
            self._attributes[cls.updated_at_column] = self.fresh_timestamp()
            dirty = self.get_dirty()

        key = self._key_for_save_query()
        affected = self.new_query().where(cls.primary_key, key).update(dirty)
        if affected == 0:
            return False

        self._changes = dirty
        self.sync_original()
        logger.debug(f"Updated {cls.__name__} {key!r}: {sorted(dirty)}")
        return True

    def _key_for_save_query(self) -> Any:
        key = self._original.get(type(self).primary_key, self.get_key())
        if key is None:
            raise RecordStateError(f"{type(self).__name__} has no primary key value")
        return key

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def get_relation(self, name: str, loader: Callable[[], Any]) -> Any:
        """Return a cached relation value, calling ``loader`` on first access."""
        if name not in self._relations:
            self._relations[name] = loader()
        return self._relations[name]

    def set_relation(self, name: str, value: Any) -> "Record":
        self._relations[name] = value
        return self

    def unset_relation(self, name: str) -> "Record":
        self._relations.pop(name, None)
        return self

    def relation_loaded(self, name: str) -> bool:
        return name in self._relations

    def get_relations(self) -> dict:
        return dict(self._relations)

    def load(self, *names: str) -> "Record":
        """Load relations defined as methods returning a ``Relation``.

        Example:
            >>> user.load("posts", "roles")
        """
        for name in names:
            method = getattr(type(self), name, None)
            if not callable(method):
                raise RecordStateError(f"{type(self).__name__} has no relation {name!r}")
            relation = method(self)
            if not isinstance(relation, Relation):
                raise RecordStateError(f"{type(self).__name__}.{name}() did not return a relation")
            self._relations[name] = relation.get_results()
        return self

    def has_many(
        self,
        related: type["Record"],
        foreign_key: Optional[str] = None,
        local_key: Optional[str] = None,
    ) -> HasMany:
        """Rows of ``related`` whose ``foreign_key`` holds this record's key."""
        return HasMany(
            related.query(),
            self,
            foreign_key or type(self).foreign_key_name(),
            local_key or type(self).primary_key,
        )

    def belongs_to(
        self,
        related: type["Record"],
        foreign_key: Optional[str] = None,
        owner_key: Optional[str] = None,
        relation: Optional[str] = None,
    ) -> BelongsTo:
        """The ``related`` record referenced by this record's ``foreign_key``."""
        return BelongsTo(
            related.query(),
            self,
            foreign_key or related.foreign_key_name(),
            owner_key or related.primary_key,
            relation or snake_case(related.__name__),
        )

    def belongs_to_many(
        self,
        related: type["Record"],
        pivot_table: Optional[str] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
        parent_key: Optional[str] = None,
        related_key: Optional[str] = None,
    ) -> BelongsToMany:
        """Records of ``related`` linked through a pivot table.

        The pivot table defaults to both singular snake-case names in
        alphabetical order: ``role_user`` for ``User`` and ``Role``.
        """
        if pivot_table is None:
            pivot_table = "_".join(sorted([snake_case(type(self).__name__), snake_case(related.__name__)]))
        return BelongsToMany(
            related.query(),
            self,
            pivot_table,
            foreign_pivot_key or type(self).foreign_key_name(),
            related_pivot_key or related.foreign_key_name(),
            parent_key or type(self).primary_key,
            related_key or related.primary_key,
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _is_visible(self, key: str) -> bool:
        cls = type(self)
        if cls.visible:
            return key in cls.visible
        return key not in cls.hidden

    def to_dict(self) -> dict:
        """Visible attributes with casts applied, plus loaded relations."""
        data = {
            key: self.get_attribute(key)
            for key in self._attributes
            if self._is_visible(key)
        }
        for name, value in self._relations.items():
            if self._is_visible(name):
                data[name] = _serialize_relation(value)
        return data

    def to_json(self, **kwargs: Any) -> str:
        date_format = self.get_date_format()

        def default(value: Any) -> Any:
            if isinstance(value, datetime):
                return value.strftime(date_format)
            if isinstance(value, date):
                return value.isoformat()
            if isinstance(value, SimpleNamespace):
                return vars(value)
            raise TypeError(f"{type(value).__name__} is not JSON serializable")

        return json.dumps(self.to_dict(), default=default, **kwargs)

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    # Columns win over class settings of the same name (a ``hidden`` or
    # ``table`` column); methods and properties still win over columns.

    def __getattribute__(self, name: str) -> Any:
        if not name.startswith("_"):
            attributes = object.__getattribute__(self, "__dict__").get("_attributes")
            if attributes is not None and name in attributes and _is_setting(type(self), name):
                return self.get_attribute(name)
        return object.__getattribute__(self, name)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        attributes = self.__dict__.get("_attributes", {})
        relations = self.__dict__.get("_relations", {})
        if name in attributes or name in relations:
            return self.get_attribute(name)
        raise AttributeError(f"{type(self).__name__!r} record has no attribute {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or _is_data_descriptor(type(self), name):
            object.__setattr__(self, name, value)
        else:
            self.set_attribute(name, value)

    def __delattr__(self, name: str) -> None:
        if name.startswith("_") or _is_data_descriptor(type(self), name):
            object.__delattr__(self, name)
        else:
            self.unset_attribute(name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            type(self) is type(other)
            and self._exists
            and other._exists
            and self.get_key() == other.get_key()
        )

    __hash__ = object.__hash__

    def __str__(self) -> str:
        return self.to_json()

    def __repr__(self) -> str:
        state = "persisted" if self._exists else "new"
        return f"<{type(self).__name__} {type(self).primary_key}={self.get_key()!r} {state}>"


_MISSING = object()


def _class_attribute(cls: type, name: str) -> Any:
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass.__dict__[name]
    return _MISSING


def _is_data_descriptor(cls: type, name: str) -> bool:
    kind = type(_class_attribute(cls, name))
    return hasattr(kind, "__set__") or hasattr(kind, "__delete__")


def _is_setting(cls: type, name: str) -> bool:
    """True for plain class values such as ``hidden`` or ``casts``."""
    value = _class_attribute(cls, name)
    return value is not _MISSING and not callable(value) and not hasattr(type(value), "__get__")


def _serialize_relation(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize_relation(item) for item in value]
    return value

