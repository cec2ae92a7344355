"""
Generation of native role names.

Names are derived from the naming hint (or the name) of an access provider and
made to fit the naming constraints of the warehouse. A generator keeps track
of every name it handed out so that two access providers never end up with
the same role within one namespace.
"""

import re
import secrets
import string
from dataclasses import dataclass
from typing import Dict, Optional, Set

from accessfrost.logger import GLOBAL_LOGGER as logger


@dataclass(frozen=True)
class NamingConstraints:
    upper_case_letters: bool = True
    lower_case_letters: bool = False
    numbers: bool = True
    special_characters: str = "_$"
    max_length: int = 255
    split_character: str = "_"

    @property
    def suffix_separator(self) -> str:
        return self.split_character * 2

    def allows(self, char: str) -> bool:
        if char.isascii() and char.isupper():
            return self.upper_case_letters
        if char.isascii() and char.islower():
            return self.lower_case_letters
        if char.isascii() and char.isdigit():
            return self.numbers
        return char in self.special_characters


SNOWFLAKE_NAMING_CONSTRAINTS = NamingConstraints()

ID_ALPHABET = string.ascii_letters + string.digits


def translate(name: str, constraints: NamingConstraints) -> str:
    """
    Turn an arbitrary name into one that satisfies the constraints.

    >>> translate("my role - finance", SNOWFLAKE_NAMING_CONSTRAINTS)
    'MY_ROLE_FINANCE'
    """
    if constraints.upper_case_letters and not constraints.lower_case_letters:
        name = name.upper()
    elif constraints.lower_case_letters and not constraints.upper_case_letters:
        name = name.lower()

    split = constraints.split_character
    translated = "".join(
        char if constraints.allows(char) else split for char in name.strip()
    )
    translated = re.sub(f"{re.escape(split)}+", split, translated).strip(split)

    return translated[: constraints.max_length]


def strip_unique_suffix(name: str, constraints: NamingConstraints) -> str:
    """Cut a generated name at the first occurrence of the suffix separator."""
    return name.split(constraints.suffix_separator, 1)[0]


class UniqueNameGenerator:
    """
    Hands out unique names within a single namespace.

    Generating twice for the same access provider id returns the same name.
    On a collision, `__0`, `__1`, ... is appended to the translated name.
    """

    def __init__(
        self, constraints: NamingConstraints, namespace: Optional[str] = None
    ) -> None:
        self.constraints = constraints
        self.namespace = namespace
        self._by_id: Dict[str, str] = {}
        self._used: Set[str] = set()

    def _with_suffix(self, base: str, index: int) -> str:
        suffix = f"{self.constraints.suffix_separator}{index}"
        return base[: self.constraints.max_length - len(suffix)] + suffix

    def generate(self, access_provider_id: str, hint: str) -> str:
        if access_provider_id in self._by_id:
            return self._by_id[access_provider_id]

        base = translate(hint, self.constraints)
        if not base:
            raise ValueError(f"unable to generate a name from {hint!r}")

        candidate = base
        index = 0
        while candidate in self._used:
            candidate = self._with_suffix(base, index)
            index += 1

        self._claim(access_provider_id, candidate)
        logger.debug(
            f"Generated name {candidate!r} for access provider {access_provider_id!r}"
        )

        return candidate

    def regenerate(self, access_provider_id: str, hint: str) -> str:
        """
        Pick the next free name for an access provider whose current name is
        unusable. The name it had stays reserved.
        """
        self._by_id.pop(access_provider_id, None)
        return self.generate(access_provider_id, hint)

    def claim(self, access_provider_id: str, name: str) -> None:
        """Bind an access provider to a name it already owns natively."""
        previous = self._by_id.get(access_provider_id)
        if previous is not None and previous != name:
            self._used.discard(previous)
        self._claim(access_provider_id, name)

    def _claim(self, access_provider_id: str, name: str) -> None:
        self._by_id[access_provider_id] = name
        self._used.add(name)

    def is_used(self, name: str) -> bool:
        return name in self._used


def random_suffix(length: int = 8) -> str:
    """Random characters used to make policy and filter names unique."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


OBJECT_PREFIX = "ACCESSFROST_"


def prefixed_name(name: str) -> str:
    """
    Name of a policy or share managed by accessfrost.

    >>> prefixed_name("Customer email")
    'ACCESSFROST_CUSTOMER_EMAIL'
    """
    if name.startswith(OBJECT_PREFIX):
        name = name[len(OBJECT_PREFIX) :]

    result = OBJECT_PREFIX + name.upper().replace(" ", "_")
    return "".join(char for char in result if char.isalnum() or char == "_")
