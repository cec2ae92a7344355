"""
Run settings, read from the `settings` section of an access-provider file.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Settings:
    excluded_roles: List[str] = field(default_factory=list)
    external_identity_store_owners: List[str] = field(default_factory=list)
    link_to_external_identity_store_groups: bool = False
    database_roles: bool = False
    applications: bool = False
    excluded_databases: List[str] = field(default_factory=lambda: ["SNOWFLAKE"])
    standard_edition: bool = False
    skip_columns: bool = False
    skip_tags: bool = False
    ignore_links_to_roles: List[str] = field(default_factory=list)
    role_owner_email_tag: Optional[str] = None
    role_owner_name_tag: Optional[str] = None
    role_owner_group_tag: Optional[str] = None
    mask_decrypt_function: Optional[str] = None
    mask_decrypt_column_tag: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        """Build settings from the kebab-cased keys of the file."""
        kwargs = {}
        for key, value in (data or {}).items():
            attribute = key.replace("-", "_")
            if attribute in cls.__dataclass_fields__ and value is not None:
                kwargs[attribute] = value

        return cls(**kwargs)

    @property
    def has_owner_tags(self) -> bool:
        return bool(
            self.role_owner_email_tag
            or self.role_owner_name_tag
            or self.role_owner_group_tag
        )
