"""
Query builder bound to a record class.
"""

from typing import TYPE_CHECKING, Any, Optional

from arbor.query.builder import QueryBuilder

if TYPE_CHECKING:
    from arbor.records.record import Record


class RecordQuery(QueryBuilder):
    """A ``QueryBuilder`` whose reads return records instead of dicts.

    Example:
        >>> User.query().where("active", True).order_by("name").get()
        [<User id=1 persisted>, <User id=4 persisted>]
    """

    def __init__(self, model: type["Record"]) -> None:
        super().__init__(model.get_executor(), model.get_table())
        self.model = model

    def get_rows(self) -> list[dict]:
        """Run the query and return raw rows."""
        return super().get()

    def get(self) -> list["Record"]:
        return [self.model.new_from_row(row) for row in self.get_rows()]

    def find(self, id: Any, column: Optional[str] = None) -> Optional["Record"]:
        return self.where(column or self.model.primary_key, "=", id).first()

    def __repr__(self) -> str:
        return f"<RecordQuery model={self.model.__name__} table={self.table_name!r}>"
