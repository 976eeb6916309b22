"""Active records, attribute casts and relations."""

from arbor.records.casts import cast_value, prepare_value
from arbor.records.query import RecordQuery
from arbor.records.record import Record
from arbor.records.relations import BelongsTo, BelongsToMany, HasMany, Relation

__all__ = [
    "Record",
    "RecordQuery",
    "Relation",
    "HasMany",
    "BelongsTo",
    "BelongsToMany",
    "cast_value",
    "prepare_value",
]
