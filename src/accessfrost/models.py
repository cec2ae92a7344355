"""
Access providers and the pieces they are made of.

These are plain dataclasses built from (and serialized back to) the
dictionaries found in an access-provider file.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from accessfrost.role_scope import RoleKind


class Action(str, Enum):
    GRANT = "grant"
    PURPOSE = "purpose"
    MASK = "mask"
    FILTERED = "filtered"
    SHARE = "share"

    @classmethod
    def lookup(cls, value: str) -> Optional["Action"]:
        try:
            return cls(value.lower())
        except ValueError:
            return None


GRANT_ACTIONS = (Action.GRANT, Action.PURPOSE)


class MutationAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    RENAME = "rename"
    DELETE = "delete"


@dataclass
class DataObjectReference:
    full_name: str
    type: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataObjectReference":
        return cls(full_name=data["full_name"], type=data.get("type", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"full_name": self.full_name, "type": self.type}


@dataclass
class WhatItem:
    data_object: DataObjectReference
    permissions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WhatItem":
        return cls(
            data_object=DataObjectReference.from_dict(data["data_object"]),
            permissions=list(data.get("permissions") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data_object": self.data_object.to_dict(),
            "permissions": list(self.permissions),
        }


@dataclass
class WhoItem:
    users: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    inherit_from: List[str] = field(default_factory=list)
    recipients: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WhoItem":
        data = data or {}
        return cls(
            users=list(data.get("users") or []),
            groups=list(data.get("groups") or []),
            inherit_from=list(data.get("inherit_from") or []),
            recipients=list(data.get("recipients") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            key: list(value)
            for key, value in (
                ("users", self.users),
                ("groups", self.groups),
                ("inherit_from", self.inherit_from),
                ("recipients", self.recipients),
            )
            if value
        }


@dataclass
class Owner:
    email: Optional[str] = None
    account_name: Optional[str] = None
    group_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Owner":
        return cls(
            email=data.get("email"),
            account_name=data.get("account_name"),
            group_name=data.get("group_name"),
        )


@dataclass
class Tag:
    key: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value}


@dataclass
class AccessProvider:
    id: str
    name: str
    action: Action = Action.GRANT
    naming_hint: str = ""
    external_id: Optional[str] = None
    actual_name: Optional[str] = None
    type: Optional[str] = None
    delete: bool = False
    description: str = ""
    who: WhoItem = field(default_factory=WhoItem)
    what: List[WhatItem] = field(default_factory=list)
    filter_criteria: Optional[Dict[str, Any]] = None
    policy_rule: Optional[str] = None
    mask_type: Optional[str] = None
    owners: List[Owner] = field(default_factory=list)

    who_locked: bool = False
    inheritance_locked: bool = False
    what_locked: bool = False
    name_locked: bool = False
    delete_locked: bool = False

    # Only set when importing from the warehouse
    not_internalizable: bool = False
    incomplete: bool = False
    policy: Optional[str] = None
    tags: List[Tag] = field(default_factory=list)

    @property
    def role_kind(self) -> RoleKind:
        return RoleKind.from_value(self.type)

    @property
    def hint(self) -> str:
        return self.naming_hint or self.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessProvider":
        action = data.get("action") or Action.GRANT.value
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            action=Action.lookup(action) or action,
            naming_hint=data.get("naming_hint") or "",
            external_id=data.get("external_id"),
            actual_name=data.get("actual_name"),
            type=data.get("type"),
            delete=bool(data.get("delete", False)),
            description=data.get("description") or "",
            who=WhoItem.from_dict(data.get("who")),
            what=[WhatItem.from_dict(what) for what in data.get("what") or []],
            filter_criteria=data.get("filter_criteria"),
            policy_rule=data.get("policy_rule"),
            mask_type=data.get("mask_type"),
            owners=[Owner.from_dict(owner) for owner in data.get("owners") or []],
            who_locked=bool(data.get("who_locked", False)),
            inheritance_locked=bool(data.get("inheritance_locked", False)),
            what_locked=bool(data.get("what_locked", False)),
            name_locked=bool(data.get("name_locked", False)),
            delete_locked=bool(data.get("delete_locked", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize an imported access provider, leaving out empty fields."""
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "action": getattr(self.action, "value", self.action),
        }
        optional = {
            "naming_hint": self.naming_hint,
            "external_id": self.external_id,
            "actual_name": self.actual_name,
            "type": self.type,
            "description": self.description,
            "policy": self.policy,
            "who": self.who.to_dict(),
            "what": [what.to_dict() for what in self.what],
            "tags": [tag.to_dict() for tag in self.tags],
        }
        data.update({key: value for key, value in optional.items() if value})

        for flag in (
            "who_locked",
            "inheritance_locked",
            "what_locked",
            "name_locked",
            "delete_locked",
            "not_internalizable",
            "incomplete",
        ):
            if getattr(self, flag):
                data[flag] = True

        return data
