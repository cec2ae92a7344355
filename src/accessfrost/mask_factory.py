"""
Masking policy bodies.

Every mask type knows which column types it supports and how to render the
value shown to beneficiaries and to everybody else. Requesting a mask type
that is unknown, or that does not support the column type, falls back to the
NULL mask and reports why.
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

from accessfrost.config import Settings
from accessfrost.identifiers import string_literal
from accessfrost.logger import GLOBAL_LOGGER as logger

NULL_MASK = "NULL"
SHA256_MASK = "SHA256"
ENCRYPT_MASK = "ENCRYPT"

VARIABLE = "val"


@dataclass
class MaskingBeneficiaries:
    roles: List[str] = field(default_factory=list)
    users: List[str] = field(default_factory=list)


class MaskPolicy(NamedTuple):
    name: str
    statement: str
    warning: Optional[str] = None


class UnsupportedColumnType(Exception):
    pass


class MaskGenerator:
    """Reveal the value to the beneficiaries and mask it for everybody else."""

    def supported_type(self, column_type: str) -> bool:
        return True

    def revealed(self, variable: str) -> str:
        return variable

    def masked(self, variable: str) -> str:
        raise NotImplementedError

    def generate(
        self, name: str, column_type: str, beneficiaries: MaskingBeneficiaries
    ) -> str:
        if not self.supported_type(column_type):
            raise UnsupportedColumnType(f"unsupported type {column_type}")

        revealed = self.revealed(VARIABLE)
        cases = []

        if beneficiaries.roles:
            roles = " OR ".join(
                f"IS_ROLE_IN_SESSION({string_literal(role)})"
                for role in beneficiaries.roles
            )
            cases.append(f"WHEN ({roles}) THEN {revealed}")

        if beneficiaries.users:
            users = ", ".join(string_literal(user) for user in beneficiaries.users)
            cases.append(f"WHEN current_user() IN ({users}) THEN {revealed}")

        statement = (
            f"CREATE MASKING POLICY {name} AS ({VARIABLE} {column_type}) "
            f"RETURNS {column_type} ->\n"
        )

        if not cases:
            statement += self.masked(VARIABLE)
        else:
            statement += "CASE\n"
            statement += "".join(f"\t{case}\n" for case in cases)
            statement += f"\tELSE {self.masked(VARIABLE)}\n"
            statement += "END"

        return statement + ";"


class NullMask(MaskGenerator):
    def masked(self, variable: str) -> str:
        return "NULL"


class Sha256Mask(MaskGenerator):
    digest_size = 256

    def supported_type(self, column_type: str) -> bool:
        return column_type.lower().startswith(("varchar", "char", "string", "text"))

    def masked(self, variable: str) -> str:
        return f"SHA2({variable}, {self.digest_size})"


class EncryptMask(MaskGenerator):
    """
    Columns hold encrypted values: beneficiaries see the decrypted value, all
    others the value as stored.
    """

    def __init__(self, decrypt_function: str, column_tag: Optional[str] = None):
        self.decrypt_function = decrypt_function
        self.column_tag = column_tag

    def revealed(self, variable: str) -> str:
        if self.column_tag:
            return (
                f"{self.decrypt_function}({variable}, "
                f"SYSTEM$GET_TAG_ON_CURRENT_COLUMN({string_literal(self.column_tag)}))"
            )
        return f"{self.decrypt_function}({variable})"

    def masked(self, variable: str) -> str:
        return variable


class MaskFactory:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.generators: Dict[str, MaskGenerator] = {}

        self.register(NULL_MASK, NullMask())
        self.register(SHA256_MASK, Sha256Mask())

        if settings is not None and settings.mask_decrypt_function:
            self.register(
                ENCRYPT_MASK,
                EncryptMask(
                    settings.mask_decrypt_function, settings.mask_decrypt_column_tag
                ),
            )

    def register(self, mask_type: str, generator: MaskGenerator) -> None:
        self.generators[mask_type.upper()] = generator

    def create_mask(
        self,
        mask_name: str,
        column_type: str,
        mask_type: Optional[str],
        beneficiaries: MaskingBeneficiaries,
    ) -> MaskPolicy:
        policy_name = f"{mask_name}_{column_type}"

        warning = None
        generator = self.generators[NULL_MASK]
        if mask_type:
            if mask_type.upper() in self.generators:
                generator = self.generators[mask_type.upper()]
            else:
                warning = f"unknown mask type {mask_type!r}"

        try:
            statement = generator.generate(policy_name, column_type, beneficiaries)
        except UnsupportedColumnType as exc:
            warning = f"mask type {mask_type!r}: {exc}"
            statement = self.generators[NULL_MASK].generate(
                policy_name, column_type, beneficiaries
            )

        if warning is not None:
            warning = f"{warning}, falling back to a NULL mask for {policy_name}"
            logger.warning(warning)

        return MaskPolicy(policy_name, statement, warning)
