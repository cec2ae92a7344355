"""
Native role identities.

Roles live in one of three namespaces: the account, a database or an
application. Internally a role is one of the frozen dataclasses below; the
string envelopes (``DATABASEROLE###DATABASE:<db>###ROLE:<role>``) only exist
at the edges, when reading or writing external ids.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

DATABASE_ROLE_PREFIX = "DATABASEROLE###DATABASE:"
APPLICATION_ROLE_PREFIX = "APPLICATIONROLE###APPLICATION:"
ROLE_DIVIDER = "###ROLE:"

SHARE_PREFIX = "share:"

SYSTEM_ROLES = (
    "ORGADMIN",
    "ACCOUNTADMIN",
    "SECURITYADMIN",
    "USERADMIN",
    "SYSADMIN",
    "PUBLIC",
)


class RoleKind(str, Enum):
    ACCOUNT = "role"
    DATABASE = "database-role"
    APPLICATION = "application-role"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "RoleKind":
        """Map an access provider type to a role kind, account role by default."""
        if not value:
            return cls.ACCOUNT

        normalized = value.replace("_", "-").lower()
        aliases = {
            "role": cls.ACCOUNT,
            "account-role": cls.ACCOUNT,
            "database-role": cls.DATABASE,
            "databaserole": cls.DATABASE,
            "application-role": cls.APPLICATION,
            "applicationrole": cls.APPLICATION,
        }
        if normalized not in aliases:
            raise ValueError(f"Unknown role type {value!r}")

        return aliases[normalized]


@dataclass(frozen=True)
class AccountRole:
    name: str

    kind = RoleKind.ACCOUNT

    @property
    def namespace(self) -> Optional[str]:
        return None

    @property
    def qualified_name(self) -> str:
        return self.name

    def with_name(self, name: str) -> "AccountRole":
        return AccountRole(name)


@dataclass(frozen=True)
class DatabaseRole:
    database: str
    name: str

    kind = RoleKind.DATABASE

    @property
    def namespace(self) -> Optional[str]:
        return self.database

    @property
    def qualified_name(self) -> str:
        return f"{self.database}.{self.name}"

    def with_name(self, name: str) -> "DatabaseRole":
        return DatabaseRole(self.database, name)


@dataclass(frozen=True)
class ApplicationRole:
    application: str
    name: str

    kind = RoleKind.APPLICATION

    @property
    def namespace(self) -> Optional[str]:
        return self.application

    @property
    def qualified_name(self) -> str:
        return f"{self.application}.{self.name}"

    def with_name(self, name: str) -> "ApplicationRole":
        return ApplicationRole(self.application, name)


RoleScope = Union[AccountRole, DatabaseRole, ApplicationRole]


def make_role(kind: RoleKind, namespace: Optional[str], name: str) -> RoleScope:
    if kind == RoleKind.DATABASE:
        if not namespace:
            raise ValueError(f"Database role {name!r} requires a database")
        return DatabaseRole(namespace, name)
    if kind == RoleKind.APPLICATION:
        if not namespace:
            raise ValueError(f"Application role {name!r} requires an application")
        return ApplicationRole(namespace, name)

    return AccountRole(name)


def to_external_id(role: RoleScope) -> str:
    if isinstance(role, DatabaseRole):
        return f"{DATABASE_ROLE_PREFIX}{role.database}{ROLE_DIVIDER}{role.name}"
    if isinstance(role, ApplicationRole):
        return f"{APPLICATION_ROLE_PREFIX}{role.application}{ROLE_DIVIDER}{role.name}"

    return role.name


def _split_envelope(external_id: str, prefix: str) -> Tuple[str, str]:
    if external_id.startswith(prefix):
        parts = external_id[len(prefix) :].split(ROLE_DIVIDER)
        if len(parts) == 2 and parts[0] and parts[1]:
            return parts[0], parts[1]

    raise ValueError(f"role {external_id!r} is not in the expected {prefix} format")


def parse_database_role_external_id(external_id: str) -> DatabaseRole:
    database, name = _split_envelope(external_id, DATABASE_ROLE_PREFIX)
    return DatabaseRole(database, name)


def parse_application_role_external_id(external_id: str) -> ApplicationRole:
    application, name = _split_envelope(external_id, APPLICATION_ROLE_PREFIX)
    return ApplicationRole(application, name)


def is_database_role_external_id(external_id: str) -> bool:
    try:
        parse_database_role_external_id(external_id)
    except ValueError:
        return False
    return True


def is_application_role_external_id(external_id: str) -> bool:
    try:
        parse_application_role_external_id(external_id)
    except ValueError:
        return False
    return True


def parse_external_id(external_id: str) -> RoleScope:
    """
    Parse any role external id.

    Strings carrying a database or application envelope must be well formed,
    everything else is an account role.
    """
    if external_id.startswith(DATABASE_ROLE_PREFIX):
        return parse_database_role_external_id(external_id)
    if external_id.startswith(APPLICATION_ROLE_PREFIX):
        return parse_application_role_external_id(external_id)

    return AccountRole(external_id)


def parse_role_external_id(kind: RoleKind, external_id: str) -> RoleScope:
    """Parse an external id that must belong to the given namespace kind."""
    if kind == RoleKind.DATABASE:
        return parse_database_role_external_id(external_id)
    if kind == RoleKind.APPLICATION:
        return parse_application_role_external_id(external_id)

    return AccountRole(external_id)


def clean_double_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def parse_namespaced_role_name(qualified_name: str) -> Tuple[str, str]:
    """Split ``DB.ROLE`` (as shown by SHOW GRANTS) into its two parts."""
    parts = [clean_double_quotes(part) for part in qualified_name.split(".", 1)]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ValueError(f"role {qualified_name!r} is not a namespaced role")
    return parts[0], parts[1]


def share_external_id(share_name: str) -> str:
    return f"{SHARE_PREFIX}{share_name}"


def is_not_internalizable_role(external_id: str, kind: RoleKind) -> bool:
    """
    Roles that must stay read-only: system roles, application roles and
    anything that looks like a database role but can not be parsed.
    """
    search_for_role = external_id

    if kind == RoleKind.DATABASE:
        try:
            role = parse_database_role_external_id(external_id)
        except ValueError:
            return True
        search_for_role = role.qualified_name
    elif kind == RoleKind.APPLICATION:
        return True

    return any(
        system_role.lower() == search_for_role.lower() for system_role in SYSTEM_ROLES
    )


def matches_any(value: str, patterns) -> bool:
    for pattern in patterns:
        if re.fullmatch(pattern, value):
            return True
    return False
