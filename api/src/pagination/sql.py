"""PostgreSQL compilation of predicates and an asyncpg-backed repository."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import asyncpg

from ..db.connection import get_db_pool
from ..errors.problem_details import InternalServerError
from .errors import InvalidFilterError
from .predicates import (
    TRUE, And, Comparison, IsNull, Not, Or, OrderTerm, Predicate, Related, combine
)
from .schema import FieldKind, ResourceSchema


logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = {
    "equals": "=",
    "not": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLCompiler:
    """Compiles predicates to a parameterised WHERE fragment.

    Parameters are collected in ``params`` and referenced as ``$1``,
    ``$2``, ... in the order they were added.
    """

    def __init__(self, schema: ResourceSchema, alias: str = "t", params: Optional[List[Any]] = None):
        self.schema = schema
        self.alias = alias
        self.params: List[Any] = params if params is not None else []
        self._alias_counter = [0]

    def _child(self, schema: ResourceSchema) -> "SQLCompiler":
        self._alias_counter[0] += 1
        child = SQLCompiler(schema, f"r{self._alias_counter[0]}", self.params)
        child._alias_counter = self._alias_counter
        return child

    def param(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def _field(self, name: str):
        spec = self.schema.get(name)
        if spec is None:
            raise InvalidFilterError(f"Unknown field '{name}' on {self.schema.name}")
        return spec

    def _column(self, name: str) -> str:
        spec = self._field(name)
        return f'{self.alias}."{spec.column or name}"'

    def expression(self, path: Tuple[str, ...]) -> str:
        """SQL expression for a dotted path; relations become scalar sub-selects."""
        name = path[0]
        spec = self._field(name)
        if len(path) == 1:
            return self._column(name)
        if spec.kind != FieldKind.RELATION:
            raise InvalidFilterError(f"Cannot traverse non-relation field '{name}'")
        child = self._child(spec.target)
        inner = child.expression(path[1:])
        return (
            f'(SELECT {inner} FROM "{spec.target.table}" {child.alias} '
            f'WHERE {child.alias}."{spec.target_key}" = {self._column(name)})'
        )

    def compile(self, predicate: Predicate) -> str:
        if isinstance(predicate, And):
            if not predicate.predicates:
                return "TRUE"
            return "(" + " AND ".join(self.compile(item) for item in predicate.predicates) + ")"
        if isinstance(predicate, Or):
            if not predicate.predicates:
                return "FALSE"
            return "(" + " OR ".join(self.compile(item) for item in predicate.predicates) + ")"
        if isinstance(predicate, Not):
            return f"NOT {self.compile(predicate.predicate)}"
        if isinstance(predicate, IsNull):
            return f"{self.expression(predicate.path)} IS NULL"
        if isinstance(predicate, Related):
            return self._related(predicate)
        if isinstance(predicate, Comparison):
            return self._comparison(predicate)
        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _related(self, predicate: Related) -> str:
        *prefix, name = predicate.path
        if prefix:
            # Walk to the owning relation first, then apply the match there
            return self.compile(Related(tuple(prefix), Related((name,), predicate.predicate)))
        spec = self._field(name)
        if spec.kind != FieldKind.RELATION:
            raise InvalidFilterError(f"'{name}' is not a relation")
        child = self._child(spec.target)
        condition = child.compile(predicate.predicate)
        return (
            f'EXISTS (SELECT 1 FROM "{spec.target.table}" {child.alias} '
            f'WHERE {child.alias}."{spec.target_key}" = {self._column(name)} AND {condition})'
        )

    def _comparison(self, predicate: Comparison) -> str:
        expression = self.expression(predicate.path)
        operator = predicate.operator
        if predicate.value is None and operator in ("equals", "not"):
            return f"{expression} IS {'NOT ' if operator == 'not' else ''}NULL"
        if operator == "in":
            return f"{expression} = ANY({self.param(list(predicate.value))})"
        if operator == "contains":
            keyword = "ILIKE" if predicate.insensitive else "LIKE"
            pattern = f"%{escape_like(str(predicate.value))}%"
            return f"{expression}::text {keyword} {self.param(pattern)}"
        if operator == "equals" and predicate.insensitive:
            return f"lower({expression}) = lower({self.param(predicate.value)})"
        if operator not in COMPARISON_OPERATORS:
            raise InvalidFilterError(f"Unsupported filter operator '{operator}'")
        return f"{expression} {COMPARISON_OPERATORS[operator]} {self.param(predicate.value)}"

    def order_by(self, ordering: List[OrderTerm]) -> str:
        if not ordering:
            return ""
        terms = [
            f"{self.expression(term.path)} {'DESC' if term.direction == 'desc' else 'ASC'}"
            for term in ordering
        ]
        return "ORDER BY " + ", ".join(terms)


RowMapper = Callable[[Dict[str, Any]], Any]


class AsyncpgRepository:
    """Repository collaborator backed by an asyncpg pool.

    Args:
        schema: Resource schema describing table and columns
        columns: Columns selected for every record
        relations: Embedded to-one relations, mapping relation field name to
            the target columns returned as a nested object
        scope: Predicate always ANDed into queries (e.g. tenant scoping)
        row_mapper: Converts a row dict into the returned record
    """

    def __init__(
        self,
        schema: ResourceSchema,
        columns: List[str],
        relations: Optional[Dict[str, List[str]]] = None,
        scope: Optional[Predicate] = None,
        row_mapper: Optional[RowMapper] = None
    ):
        self.schema = schema
        self.columns = columns
        self.relations = relations or {}
        self.scope = scope if scope is not None else TRUE
        self.row_mapper = row_mapper

    def _select_list(self, compiler: SQLCompiler, projection: Optional[List[str]]) -> str:
        columns = [column for column in self.columns if not projection or column in projection]
        parts = [f'{compiler.alias}."{column}"' for column in columns]
        for name, target_columns in self.relations.items():
            if projection and name not in projection:
                continue
            spec = self.schema.get(name)
            target_list = ", ".join(f'"{column}"' for column in target_columns)
            parts.append(
                f'(SELECT row_to_json(rel) FROM (SELECT {target_list} FROM "{spec.target.table}" '
                f'WHERE "{spec.target_key}" = {compiler.alias}."{spec.column}") rel) AS "{name}"'
            )
        return ", ".join(parts)

    def _map_row(self, row: Any) -> Any:
        item = dict(row)
        for name in self.relations:
            if isinstance(item.get(name), str):
                item[name] = json.loads(item[name])
        return self.row_mapper(item) if self.row_mapper else item

    def build_find_query(
        self,
        predicate: Predicate,
        ordering: List[OrderTerm],
        limit: int,
        projection: Optional[List[str]] = None
    ) -> Tuple[str, List[Any]]:
        compiler = SQLCompiler(self.schema)
        where_clause = compiler.compile(combine(self.scope, predicate))
        order_clause = compiler.order_by(ordering)
        limit_param = compiler.param(limit)
        query = (
            f"SELECT {self._select_list(compiler, projection)} "
            f'FROM "{self.schema.table}" {compiler.alias} '
            f"WHERE {where_clause} {order_clause} LIMIT {limit_param}"
        )
        return query, compiler.params

    def build_count_query(self, predicate: Predicate) -> Tuple[str, List[Any]]:
        compiler = SQLCompiler(self.schema)
        where_clause = compiler.compile(combine(self.scope, predicate))
        query = f'SELECT COUNT(*) FROM "{self.schema.table}" {compiler.alias} WHERE {where_clause}'
        return query, compiler.params

    async def find(
        self,
        predicate: Predicate,
        ordering: List[OrderTerm],
        limit: int,
        projection: Optional[List[str]] = None
    ) -> List[Any]:
        query, params = self.build_find_query(predicate, ordering, limit, projection)
        pool = await get_db_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
        except asyncpg.PostgresError as e:
            logger.error(f"Database error paginating {self.schema.name}: {e}")
            raise InternalServerError(f"Database error: {e}")
        return [self._map_row(row) for row in rows]

    async def count(self, predicate: Predicate) -> int:
        query, params = self.build_count_query(predicate)
        pool = await get_db_pool()
        try:
            async with pool.acquire() as conn:
                count = await conn.fetchval(query, *params)
        except asyncpg.PostgresError as e:
            logger.error(f"Database error counting {self.schema.name}: {e}")
            raise InternalServerError(f"Database error: {e}")
        return count or 0
