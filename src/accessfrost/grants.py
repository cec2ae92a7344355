"""
Grant model and the set difference used to reconcile grants on a role or share.
"""

from typing import Dict, Iterable, Iterator, List, NamedTuple, Tuple

from accessfrost.identifiers import join, split_full_name
from accessfrost.object_kinds import (
    ACCOUNT,
    ObjectKind,
    convert_function_argument_signature,
)

GRANT_TYPE_BY_OBJECT_TYPE = {
    ObjectKind.TABLE.value: "TABLE",
    ObjectKind.VIEW.value: "VIEW",
    ObjectKind.MATERIALIZED_VIEW.value: "VIEW",
    ObjectKind.EXTERNAL_TABLE.value: "EXTERNAL TABLE",
    ObjectKind.ICEBERG_TABLE.value: "ICEBERG TABLE",
    ObjectKind.SHARED_DATABASE.value: "DATABASE",
    ObjectKind.SHARED_TABLE.value: "TABLE",
    ObjectKind.SHARED_VIEW.value: "VIEW",
    ObjectKind.SHARED_SCHEMA.value: "SCHEMA",
}

_DATABASE_LEVEL = {ObjectKind.DATABASE.value, ObjectKind.SHARED_DATABASE.value}
_SCHEMA_LEVEL = {ObjectKind.SCHEMA.value, ObjectKind.SHARED_SCHEMA.value}
_TABLE_LEVEL = {
    ObjectKind.TABLE.value,
    ObjectKind.VIEW.value,
    ObjectKind.MATERIALIZED_VIEW.value,
    ObjectKind.EXTERNAL_TABLE.value,
    ObjectKind.ICEBERG_TABLE.value,
    ObjectKind.SHARED_TABLE.value,
    ObjectKind.SHARED_VIEW.value,
}
_COLUMN_LEVEL = {ObjectKind.COLUMN.value, ObjectKind.SHARED_COLUMN.value}


class Grant(NamedTuple):
    permission: str
    on_type: str
    on: str

    def on_with_type(self) -> str:
        """Render the object part of a GRANT statement, e.g. `TABLE DB.S.T`."""
        if self.on_type == ACCOUNT:
            return "ACCOUNT"

        grant_type = GRANT_TYPE_BY_OBJECT_TYPE.get(self.on_type, self.on_type.upper())
        return f"{grant_type} {self.on}"

    @property
    def level(self) -> int:
        if self.on_type in _DATABASE_LEVEL:
            return 0
        if self.on_type in _SCHEMA_LEVEL:
            return 1
        if self.on_type in _TABLE_LEVEL:
            return 2
        if self.on_type in _COLUMN_LEVEL:
            return 3
        return 4


class GrantSet:
    """
    An insertion ordered, de-duplicated set of grants.

    Iteration yields database grants first, then schema, table and column
    grants, then everything else. Within a level the insertion order is kept.
    """

    def __init__(self, grants: Iterable[Grant] = ()) -> None:
        self._grants: Dict[Grant, None] = {}
        self.add(*grants)

    def add(self, *grants: Grant) -> None:
        for grant in grants:
            self._grants.setdefault(grant, None)

    def __contains__(self, grant: object) -> bool:
        return grant in self._grants

    def __len__(self) -> int:
        return len(self._grants)

    def __iter__(self) -> Iterator[Grant]:
        return iter(self.to_list())

    def __repr__(self) -> str:
        return f"GrantSet({self.to_list()!r})"

    def to_list(self) -> List[Grant]:
        return sorted(self._grants, key=lambda grant: grant.level)


def diff_grants(
    found: Iterable[Grant], expected: Iterable[Grant]
) -> Tuple[List[Grant], List[Grant]]:
    """
    Compute the grants to add and to revoke.

    Returns (expected - found, found - expected), both keeping the order of
    the collection they came from.
    """
    found_set = GrantSet(found)
    expected_set = GrantSet(expected)

    to_add = [grant for grant in expected_set if grant not in found_set]
    to_remove = [grant for grant in found_set if grant not in expected_set]

    return to_add, to_remove


def function_full_name(database: str, schema: str, name: str, signature: str) -> str:
    """
    Name a function or procedure the way SHOW GRANTS does once converted:
    always quoting the function name and keeping only the argument types.

    >>> function_full_name("DB", "S", "decrypt", "(VAL VARCHAR)")
    'DB.S."decrypt"(VARCHAR)'
    """
    quoted = '"{}"'.format(name.replace('"', '""'))
    arguments = convert_function_argument_signature(signature)
    return f"{join(database, schema)}.{quoted}{arguments}"


def function_name_from_grant(name: str) -> str:
    """
    Convert a function name as listed by SHOW GRANTS to the form used in
    expected grants.

    >>> function_name_from_grant('DB.S."DECRYPT(VAL VARCHAR):VARCHAR(16777216)"')
    'DB.S."DECRYPT"(VARCHAR)'
    """
    try:
        parts = split_full_name(name)
    except ValueError:
        return name

    if len(parts) != 3:
        return name

    database, schema, function = parts
    open_paren = function.find("(")
    if open_paren == -1:
        return name

    close_paren = function.rfind("):")
    if close_paren == -1:
        close_paren = function.rfind(")")
    if close_paren < open_paren:
        return name

    return function_full_name(
        database,
        schema,
        function[:open_paren],
        function[open_paren : close_paren + 1],
    )
