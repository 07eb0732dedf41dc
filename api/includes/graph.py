"""
Relation graph: entity -> relation name -> descriptor.

The graph is built once (usually from the declared catalog, see
`records/catalog.py`) and is read-only afterwards. Lookups return `None`
for unknown names instead of raising; the compiler decides what that means.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping


class RelationKind(str, Enum):
    ONE = "one"
    MANY = "many"
    MANY_VIA_JOIN = "many_via_join"


@dataclass(frozen=True)
class EntitySchema:
    name: str
    primary_key: tuple[str, ...]
    # None means "columns not declared"; column checks are skipped then.
    columns: tuple[str, ...] | None = None

    def has_column(self, column: str) -> bool:
        return self.columns is None or column in self.columns


@dataclass(frozen=True)
class RelationDescriptor:
    """
    A directed, named edge `source -> target`.

    - one:           source_row[source_key] == target_row[target_key]
    - many:          source_row[source_key] == child_row[target_key]
    - many_via_join: source_row[source_key] == join_row[join_source_key]
                     and join_row[join_target_key] == target_row[target_key]
    """

    name: str
    source: str
    kind: RelationKind
    target: str
    source_key: tuple[str, ...]
    target_key: tuple[str, ...]
    join_entity: str | None = None
    join_source_key: tuple[str, ...] = ()
    join_target_key: tuple[str, ...] = ()
    unique: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "target": self.target,
            "sourceKey": list(self.source_key),
            "targetKey": list(self.target_key),
        }
        if self.join_entity is not None:
            out["joinEntity"] = self.join_entity
            out["joinSourceKey"] = list(self.join_source_key)
            out["joinTargetKey"] = list(self.join_target_key)
            out["unique"] = self.unique
        return out


class RelationGraph:
    def __init__(
        self,
        entities: Iterable[EntitySchema],
        relations: Iterable[RelationDescriptor],
    ) -> None:
        schemas: dict[str, EntitySchema] = {}
        for schema in entities:
            if schema.name in schemas:
                raise ValueError(f"Entity '{schema.name}' is declared twice.")
            if not schema.primary_key:
                raise ValueError(f"Entity '{schema.name}' has no primary key.")
            schemas[schema.name] = schema

        edges: dict[str, dict[str, RelationDescriptor]] = {name: {} for name in schemas}
        for rel in relations:
            _check_relation(rel, schemas)
            node = edges[rel.source]
            if rel.name in node:
                raise ValueError(f"Relation '{rel.name}' is declared twice on '{rel.source}'.")
            node[rel.name] = rel

        self._entities: Mapping[str, EntitySchema] = MappingProxyType(schemas)
        self._relations: Mapping[str, Mapping[str, RelationDescriptor]] = MappingProxyType(
            {name: MappingProxyType(node) for name, node in edges.items()}
        )

    @property
    def entities(self) -> tuple[str, ...]:
        return tuple(self._entities)

    def entity(self, name: str) -> EntitySchema | None:
        return self._entities.get(name)

    def relations(self, entity: str) -> Mapping[str, RelationDescriptor]:
        return self._relations.get(entity, MappingProxyType({}))

    def lookup(self, entity: str, name: str) -> RelationDescriptor | None:
        node = self._relations.get(entity)
        if node is None:
            return None
        return node.get(name)


def _check_relation(rel: RelationDescriptor, schemas: Mapping[str, EntitySchema]) -> None:
    label = f"{rel.source}.{rel.name}"
    for entity in (rel.source, rel.target):
        if entity not in schemas:
            raise ValueError(f"Relation '{label}' references unknown entity '{entity}'.")
    if not rel.source_key or len(rel.source_key) != len(rel.target_key):
        raise ValueError(f"Relation '{label}' has mismatched key columns.")

    if rel.kind is RelationKind.MANY_VIA_JOIN:
        if rel.join_entity is None or rel.join_entity not in schemas:
            raise ValueError(f"Relation '{label}' needs a declared join entity.")
        if len(rel.join_source_key) != len(rel.source_key):
            raise ValueError(f"Relation '{label}' has mismatched join source key.")
        if len(rel.join_target_key) != len(rel.target_key):
            raise ValueError(f"Relation '{label}' has mismatched join target key.")
    elif rel.join_entity is not None:
        raise ValueError(f"Relation '{label}' is '{rel.kind.value}' but names a join entity.")

    checks = [(rel.source, rel.source_key), (rel.target, rel.target_key)]
    if rel.join_entity is not None:
        checks.append((rel.join_entity, rel.join_source_key + rel.join_target_key))
    for entity, columns in checks:
        schema = schemas[entity]
        missing = [c for c in columns if not schema.has_column(c)]
        if missing:
            raise ValueError(f"Relation '{label}' uses unknown columns {missing} of '{entity}'.")


# ---------------------------------------------------------------------------
# Building from table metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ForeignKey:
    columns: tuple[str, ...]
    target_table: str
    target_columns: tuple[str, ...]
    # A unique FK turns the parent side into has-one instead of has-many.
    unique: bool = False


@dataclass(frozen=True)
class TableSpec:
    name: str
    primary_key: tuple[str, ...]
    columns: tuple[str, ...] | None = None
    foreign_keys: tuple[ForeignKey, ...] = ()
    # Composite UNIQUE constraints, as column tuples.
    unique: tuple[tuple[str, ...], ...] = ()
    # Force junction treatment for a two-FK table whose link pairs may repeat.
    junction: bool = False

    def covers(self, columns: Iterable[str]) -> bool:
        """True when the primary key or a UNIQUE constraint is exactly `columns`."""
        wanted = set(columns)
        return set(self.primary_key) == wanted or any(set(u) == wanted for u in self.unique)


def singular(name: str) -> str:
    return name[:-1] if name.endswith("s") else name


def plural(name: str) -> str:
    return name if name.endswith("s") else name + "s"


def build_graph(tables: Iterable[TableSpec]) -> RelationGraph:
    """
    Derive relations from foreign keys.

    1. Every FK gives the child a `one` relation to its parent and the
       parent a `many` (or has-one `one` for unique FKs) relation back.
    2. A table with exactly two FKs to two different tables is a junction
       when its primary key or a UNIQUE constraint is exactly the FK
       columns, or when it is declared with `junction=True`. A junction
       gives both sides a `many_via_join` relation, marked `unique` when a
       key covers the FK columns. Other two-FK tables (comments of a user
       on a post) get belongs-to and has-many relations only.

    When two rules produce the same name on an entity, the first one wins.
    """
    tables = list(tables)
    by_name = {t.name: t for t in tables}
    relations: dict[tuple[str, str], RelationDescriptor] = {}

    def add(rel: RelationDescriptor) -> None:
        relations.setdefault((rel.source, rel.name), rel)

    for child in tables:
        for fk in child.foreign_keys:
            if fk.target_table not in by_name:
                continue
            add(
                RelationDescriptor(
                    name=singular(fk.target_table),
                    source=child.name,
                    kind=RelationKind.ONE,
                    target=fk.target_table,
                    source_key=fk.columns,
                    target_key=fk.target_columns,
                )
            )
            add(
                RelationDescriptor(
                    name=singular(child.name) if fk.unique else plural(child.name),
                    source=fk.target_table,
                    kind=RelationKind.ONE if fk.unique else RelationKind.MANY,
                    target=child.name,
                    source_key=fk.target_columns,
                    target_key=fk.columns,
                )
            )

    for junction in tables:
        if len(junction.foreign_keys) != 2:
            continue
        fk_a, fk_b = junction.foreign_keys
        a, b = fk_a.target_table, fk_b.target_table
        if a == b or a not in by_name or b not in by_name:
            continue

        unique = junction.covers(fk_a.columns + fk_b.columns)
        if not (unique or junction.junction):
            continue
        for near, far in ((fk_a, fk_b), (fk_b, fk_a)):
            add(
                RelationDescriptor(
                    name=plural(far.target_table),
                    source=near.target_table,
                    kind=RelationKind.MANY_VIA_JOIN,
                    target=far.target_table,
                    source_key=near.target_columns,
                    target_key=far.target_columns,
                    join_entity=junction.name,
                    join_source_key=near.columns,
                    join_target_key=far.columns,
                    unique=unique,
                )
            )

    entities = [EntitySchema(t.name, t.primary_key, t.columns) for t in tables]
    return RelationGraph(entities, relations.values())
