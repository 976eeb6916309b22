"""
Relations between record classes.

A relation wraps a ``RecordQuery`` for the related class, constrained to
one parent record. Relation objects are built by ``Record.has_many``,
``Record.belongs_to`` and ``Record.belongs_to_many``; loading results into
a record's relation cache is the caller's choice::

    class User(Record):
        def posts(self):
            return self.has_many(Post)

    user.posts().where("published", True).get()
    user.load("posts")
    user.get_attribute("posts")     # cached list
    user.get_relation("roles", lambda: user.roles().get())
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Optional

from arbor.exceptions import RecordStateError
from arbor.logger import get_logger
from arbor.query.builder import QueryBuilder

if TYPE_CHECKING:
    from arbor.records.query import RecordQuery
    from arbor.records.record import Record

logger = get_logger(__name__)


class Relation(ABC):
    """Base class for relations.

    Args:
        query: Query for the related record class
        parent: Record the relation hangs off
    """

    def __init__(self, query: "RecordQuery", parent: "Record") -> None:
        self.query = query
        self.parent = parent
        self.related = query.model
        self.add_constraints()

    @abstractmethod
    def add_constraints(self) -> None:
        """Constrain the query to rows related to the parent."""

    @abstractmethod
    def get_results(self) -> Any:
        """Value stored in the parent's relation cache."""

    def where(self, *args: Any) -> "Relation":
        self.query.where(*args)
        return self

    def order_by(self, column: str, direction: str = "ASC") -> "Relation":
        self.query.order_by(column, direction)
        return self

    def limit(self, count: Optional[int]) -> "Relation":
        self.query.limit(count)
        return self

    def get(self) -> list["Record"]:
        return self.query.clone().get()

    def first(self) -> Optional["Record"]:
        return self.query.clone().first()

    def count(self) -> int:
        return self.query.count()

    def exists(self) -> bool:
        return self.count() > 0

    def to_sql(self) -> str:
        query = self.query.clone()
        if query.intent is None:
            query.select()
        return query.to_sql()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {type(self.parent).__name__} -> {self.related.__name__}>"


class HasMany(Relation):
    """Related rows hold the parent's key in ``foreign_key``."""

    def __init__(self, query: "RecordQuery", parent: "Record", foreign_key: str, local_key: str) -> None:
        self.foreign_key = foreign_key
        self.local_key = local_key
        super().__init__(query, parent)

    def parent_key(self) -> Any:
        return self.parent.get_attribute(self.local_key)

    def add_constraints(self) -> None:
        key = self.parent_key()
        if key is None:
            # Unsaved parent: nothing can reference it yet.
            self.query.where_in(self.foreign_key, ())
        else:
            self.query.where(self.foreign_key, "=", key)

    def get_results(self) -> list["Record"]:
        return self.get()

    def make(self, attributes: Optional[Mapping] = None) -> "Record":
        """Build an unsaved related record pointing at the parent."""
        record = self.related(attributes)
        record.set_attribute(self.foreign_key, self._require_parent_key())
        return record

    def create(self, attributes: Optional[Mapping] = None) -> "Record":
        record = self.make(attributes)
        record.save()
        return record

    def save(self, record: "Record") -> "Record":
        """Point ``record`` at the parent and save it."""
        record.set_attribute(self.foreign_key, self._require_parent_key())
        record.save()
        return record

    def save_many(self, records: Iterable["Record"]) -> list["Record"]:
        return [self.save(record) for record in records]

    def update(self, values: Mapping) -> int:
        """Update every related row.

        Returns:
            Number of affected rows
        """
        values = dict(values)
        if self.related.timestamps and self.related.updated_at_column not in values:
            values[self.related.updated_at_column] = self.related.fresh_timestamp()
        return self.query.clone().update(values)

    def delete(self) -> int:
        return self.query.clone().delete()

    def _require_parent_key(self) -> Any:
        key = self.parent_key()
        if key is None:
            raise RecordStateError(
                f"{type(self.parent).__name__} must be saved before adding related {self.related.__name__} records"
            )
        return key


class BelongsTo(Relation):
    """The parent holds the related record's key in ``foreign_key``."""

    def __init__(
        self,
        query: "RecordQuery",
        child: "Record",
        foreign_key: str,
        owner_key: str,
        relation_name: str,
    ) -> None:
        self.foreign_key = foreign_key
        self.owner_key = owner_key
        self.relation_name = relation_name
        super().__init__(query, child)

    @property
    def child(self) -> "Record":
        return self.parent

    def add_constraints(self) -> None:
        value = self.child.get_attribute(self.foreign_key)
        if value is None:
            self.query.where_in(self.owner_key, ())
        else:
            self.query.where(self.owner_key, "=", value)

    def get_results(self) -> Optional["Record"]:
        return self.first()

    def associate(self, record: Optional["Record"]) -> "Record":
        """Point the child at ``record`` and cache it under the relation name."""
        value = record.get_attribute(self.owner_key) if record is not None else None
        self.child.set_attribute(self.foreign_key, value)
        self.child.set_relation(self.relation_name, record)
        return self.child

    def dissociate(self) -> "Record":
        return self.associate(None)


class BelongsToMany(Relation):
    """Records linked to the parent through a pivot table.

    Results carry their pivot row as the cached ``pivot`` relation, a dict
    of the pivot columns (the two keys plus anything named in
    ``with_pivot``).
    """

    PIVOT_PREFIX = "pivot_"

    def __init__(
        self,
        query: "RecordQuery",
        parent: "Record",
        table: str,
        foreign_pivot_key: str,
        related_pivot_key: str,
        parent_key: str,
        related_key: str,
    ) -> None:
        self.table = table
        self.foreign_pivot_key = foreign_pivot_key
        self.related_pivot_key = related_pivot_key
        self.parent_key_name = parent_key
        self.related_key = related_key
        self.pivot_columns = [foreign_pivot_key, related_pivot_key]
        super().__init__(query, parent)

    def parent_key(self) -> Any:
        return self.parent.get_attribute(self.parent_key_name)

    def add_constraints(self) -> None:
        related_table = self.related.get_table()
        self.query.join(
            self.table,
            f"{self.table}.{self.related_pivot_key}",
            "=",
            f"{related_table}.{self.related_key}",
        )
        key = self.parent_key()
        if key is None:
            self.query.where_in(f"{self.table}.{self.foreign_pivot_key}", ())
        else:
            self.query.where(f"{self.table}.{self.foreign_pivot_key}", "=", key)

    def with_pivot(self, *columns: str) -> "BelongsToMany":
        """Also read these pivot columns into each result's ``pivot``."""
        for column in columns:
            if column not in self.pivot_columns:
                self.pivot_columns.append(column)
        return self

    def where_pivot(self, column: str, operator: Any, value: Any = None) -> "BelongsToMany":
        if value is None:
            self.query.where(f"{self.table}.{column}", operator)
        else:
            self.query.where(f"{self.table}.{column}", operator, value)
        return self

    def get_results(self) -> list["Record"]:
        return self.get()

    def get(self) -> list["Record"]:
        query = self.query.clone()
        query.select(self._select_columns())
        return [self._hydrate(row) for row in query.get_rows()]

    def first(self) -> Optional["Record"]:
        query = self.query.clone()
        query.select(self._select_columns()).limit(1)
        rows = query.get_rows()
        return self._hydrate(rows[0]) if rows else None

    def _select_columns(self) -> list[str]:
        columns = [f"{self.related.get_table()}.*"]
        columns.extend(
            f"{self.table}.{column} AS {self.PIVOT_PREFIX}{column}" for column in self.pivot_columns
        )
        return columns

    def _hydrate(self, row: Mapping) -> "Record":
        attributes = {}
        pivot = {}
        for key, value in row.items():
            if key.startswith(self.PIVOT_PREFIX):
                pivot[key[len(self.PIVOT_PREFIX):]] = value
            else:
                attributes[key] = value
        record = self.related.new_from_row(attributes)
        record.set_relation("pivot", pivot)
        return record

    # ------------------------------------------------------------------
    # Pivot maintenance
    # ------------------------------------------------------------------

    def new_pivot_query(self) -> QueryBuilder:
        """Query on the pivot table limited to the parent's rows."""
        return QueryBuilder(self.query.executor, self.table).where(
            self.foreign_pivot_key, "=", self._require_parent_key()
        )

    def current_ids(self) -> list:
        return self.new_pivot_query().pluck(self.related_pivot_key)

    def attach(self, ids: Any, attributes: Optional[Mapping] = None) -> None:
        """Insert pivot rows linking the parent to ``ids``.

        Args:
            ids: A key, a record, a list of either, or a mapping of key to
                extra pivot attributes
            attributes: Extra pivot attributes applied to every row
        """
        parent_key = self._require_parent_key()
        normalized = self._normalize_ids(ids)
        for related_id, extra in normalized.items():
            row = {
                self.foreign_pivot_key: parent_key,
                self.related_pivot_key: related_id,
                **(attributes or {}),
                **extra,
            }
            QueryBuilder(self.query.executor, self.table).insert(row)
        logger.debug(f"Attached {self.related.__name__} {list(normalized)} via {self.table}")

    def detach(self, ids: Any = None) -> int:
        """Delete pivot rows for ``ids``, or every pivot row of the parent.

        Returns:
            Number of pivot rows deleted
        """
        query = self.new_pivot_query()
        if ids is not None:
            keys = list(self._normalize_ids(ids))
            if not keys:
                return 0
            query.where_in(self.related_pivot_key, keys)
        return query.delete()

    def update_existing_pivot(self, related_id: Any, attributes: Mapping) -> int:
        if not attributes:
            return 0
        return (
            self.new_pivot_query()
            .where(self.related_pivot_key, "=", self._key_of(related_id))
            .update(attributes)
        )

    def sync(self, ids: Any, detaching: bool = True) -> dict[str, list]:
        """Make the pivot table link the parent to exactly ``ids``.

        Returns:
            ``{"attached": [...], "detached": [...], "updated": [...]}``
        """
        wanted = self._normalize_ids(ids)
        current = {str(key): key for key in self.current_ids()}
        wanted_by_str = {str(key): key for key in wanted}

        changes: dict[str, list] = {"attached": [], "detached": [], "updated": []}

        if detaching:
            stale = [key for text, key in current.items() if text not in wanted_by_str]
            if stale:
                self.detach(stale)
                changes["detached"] = stale

        for text, key in wanted_by_str.items():
            extra = wanted[key]
            if text not in current:
                self.attach({key: extra})
                changes["attached"].append(key)
            elif extra and self.update_existing_pivot(current[text], extra):
                changes["updated"].append(key)

        return changes

    def sync_without_detaching(self, ids: Any) -> dict[str, list]:
        return self.sync(ids, detaching=False)

    def toggle(self, ids: Any) -> dict[str, list]:
        """Detach linked ``ids`` and attach the others."""
        wanted = self._normalize_ids(ids)
        current = {str(key) for key in self.current_ids()}

        changes: dict[str, list] = {"attached": [], "detached": []}
        linked = [key for key in wanted if str(key) in current]
        if linked:
            self.detach(linked)
            changes["detached"] = linked

        unlinked = {key: extra for key, extra in wanted.items() if str(key) not in current}
        if unlinked:
            self.attach(unlinked)
            changes["attached"] = list(unlinked)
        return changes

    def _key_of(self, value: Any) -> Any:
        from arbor.records.record import Record

        if isinstance(value, Record):
            return value.get_attribute(self.related_key)
        return value

    def _normalize_ids(self, ids: Any) -> dict:
        if isinstance(ids, Mapping):
            return {self._key_of(key): dict(extra or {}) for key, extra in ids.items()}
        if isinstance(ids, (list, tuple, set)):
            return {self._key_of(item): {} for item in ids}
        return {self._key_of(ids): {}}

    def _require_parent_key(self) -> Any:
        key = self.parent_key()
        if key is None:
            raise RecordStateError(
                f"{type(self.parent).__name__} must be saved before changing its {self.related.__name__} links"
            )
        return key
