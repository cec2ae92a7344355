from typing import Any, Dict, List, TypedDict


class DataObjectSchema(TypedDict):
    full_name: str
    type: str


class WhatSchemaBase(TypedDict):
    data_object: DataObjectSchema


class WhatSchema(WhatSchemaBase, total=False):
    permissions: List[str]


class WhoSchema(TypedDict, total=False):
    users: List[str]
    groups: List[str]
    inherit_from: List[str]
    recipients: List[str]


class OwnerSchema(TypedDict, total=False):
    email: str
    account_name: str
    group_name: str


class AccessProviderSchemaBase(TypedDict):
    id: str


class AccessProviderSchema(AccessProviderSchemaBase, total=False):
    # Everything but the id is optional
    name: str
    naming_hint: str
    action: str
    type: str
    external_id: str
    actual_name: str
    description: str
    delete: bool
    who: WhoSchema
    what: List[WhatSchema]
    filter_criteria: Dict[str, Any]
    policy_rule: str
    mask_type: str
    owners: List[OwnerSchema]
    who_locked: bool
    inheritance_locked: bool
    what_locked: bool
    name_locked: bool
    delete_locked: bool


class AccessFrostSpecSchema(TypedDict, total=False):
    version: str
    settings: Dict[str, Any]
    access_providers: List[AccessProviderSchema]
