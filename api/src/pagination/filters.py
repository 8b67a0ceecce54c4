"""Typed filter tree produced by the query parser.

A filter tree maps a field name (or a combinator keyword) to one node:

* ``LiteralFilter`` - ``filter[name]=John``
* ``OperatorFilter`` - ``filter[created_at][gte]=2025-08-01``
* ``NestedFilter`` - ``filter[profile.city]=Oslo`` (embedded, non-relation path)
* ``RelationFilter`` - ``filter[created_by.email]=jane`` (to-one relation)
* ``CombinatorFilter`` - ``filter[OR][0][name]=a&filter[OR][1][name]=b``
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


FILTER_OPERATORS = ("equals", "contains", "gte", "lte", "lt", "gt", "not", "in")
COMBINATORS = ("AND", "OR", "NOT")


@dataclass
class LiteralFilter:
    value: Any


@dataclass
class OperatorFilter:
    operators: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NestedFilter:
    children: "FilterTree" = field(default_factory=dict)


@dataclass
class RelationFilter:
    children: "FilterTree" = field(default_factory=dict)


@dataclass
class CombinatorFilter:
    """Boolean combinator.

    ``AND``/``OR`` hold a list of subtrees; ``NOT`` holds exactly one.
    """

    kind: str
    children: List["FilterTree"] = field(default_factory=list)


FilterNode = Union[LiteralFilter, OperatorFilter, NestedFilter, RelationFilter, CombinatorFilter]
FilterTree = Dict[str, FilterNode]
