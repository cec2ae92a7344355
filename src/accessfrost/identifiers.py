"""
Helpers for Snowflake object identifiers.

A simple identifier starts with a letter or underscore and only contains
letters, digits, underscores and dollar signs. Anything else has to be double
quoted, with embedded double quotes doubled.
"""

import re
from typing import List, NamedTuple, Optional

SIMPLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def is_simple_name(name: str) -> bool:
    return bool(SIMPLE_NAME.match(name))


def quote(name: str) -> str:
    """
    Leave simple names as they are, double quote everything else.

    Embedded double quotes are doubled inside the surrounding quotes.
    """
    if is_simple_name(name):
        return name

    return '"{}"'.format(name.replace('"', '""'))


def string_literal(value: str) -> str:
    """Single quote a value for use in SQL, doubling embedded single quotes."""
    return "'{}'".format(value.replace("'", "''"))


def format_query(query: str, *objects: str) -> str:
    """Fill the `%s` placeholders of a query with quoted identifiers."""
    return query % tuple(quote(obj) for obj in objects)


def join(*parts: str) -> str:
    return ".".join(quote(part) for part in parts)


def split_full_name(full_name: str) -> List[str]:
    """
    Split a dotted name into its parts, honouring double quoted parts.

    Quoted parts are returned without their quotes and with doubled quotes
    collapsed. A malformed name raises a ValueError.
    """
    parts = []
    index = 0
    length = len(full_name)

    while index < length:
        if full_name[index] == '"':
            end = index + 1
            value = []
            while True:
                if end >= length:
                    raise ValueError(f"no corresponding ending quote in {full_name!r}")
                if full_name[end] == '"':
                    if end + 1 < length and full_name[end + 1] == '"':
                        value.append('"')
                        end += 2
                        continue
                    break
                value.append(full_name[end])
                end += 1

            parts.append("".join(value))
            index = end + 1
            if index < length:
                if full_name[index] != ".":
                    raise ValueError(f"a dot should follow a quote in {full_name!r}")
                index += 1
                if index == length:
                    raise ValueError(f"{full_name!r} can not end with a dot")
        else:
            dot = full_name.find(".", index)
            if dot == -1:
                parts.append(full_name[index:])
                break
            parts.append(full_name[index:dot])
            index = dot + 1
            if index == length:
                raise ValueError(f"{full_name!r} can not end with a dot")

    return parts


class SnowflakeObject(NamedTuple):
    database: Optional[str] = None
    schema: Optional[str] = None
    table: Optional[str] = None
    column: Optional[str] = None

    @classmethod
    def parse(cls, full_name: str) -> "SnowflakeObject":
        try:
            parts = split_full_name(full_name)
        except ValueError:
            return cls()

        return cls(*parts[:4])

    def parts(self) -> List[str]:
        return [part for part in self if part is not None]

    def full_name(self, with_quotes: bool = True) -> str:
        if with_quotes:
            return join(*self.parts())
        return ".".join(self.parts())
