import pytest

from accessfrost.role_scope import (
    AccountRole,
    ApplicationRole,
    DatabaseRole,
    RoleKind,
    is_not_internalizable_role,
    parse_external_id,
    parse_namespaced_role_name,
    parse_role_external_id,
    to_external_id,
)


class TestRoleScope:
    @pytest.mark.parametrize(
        "role",
        [
            AccountRole("ANALYST"),
            DatabaseRole("SALES", "READER"),
            ApplicationRole("CRM_APP", "VIEWER"),
        ],
    )
    def test_external_id_round_trip(self, role):
        """Every role survives being written to and read from an external id"""
        assert parse_external_id(to_external_id(role)) == role
        assert parse_role_external_id(role.kind, to_external_id(role)) == role

    def test_database_role_external_id(self):
        assert (
            to_external_id(DatabaseRole("SALES", "READER"))
            == "DATABASEROLE###DATABASE:SALES###ROLE:READER"
        )

    @pytest.mark.parametrize(
        "external_id",
        [
            "DATABASEROLE###DATABASE:SALES",
            "DATABASEROLE###DATABASE:###ROLE:READER",
            "DATABASEROLE###DATABASE:SALES###ROLE:",
        ],
    )
    def test_malformed_database_role_external_id(self, external_id):
        with pytest.raises(ValueError):
            parse_external_id(external_id)

    def test_role_kind_aliases(self):
        assert RoleKind.from_value(None) == RoleKind.ACCOUNT
        assert RoleKind.from_value("databaseRole") == RoleKind.DATABASE
        assert RoleKind.from_value("application_role") == RoleKind.APPLICATION

        with pytest.raises(ValueError):
            RoleKind.from_value("group")

    def test_parse_namespaced_role_name(self):
        assert parse_namespaced_role_name('"SALES"."READER"') == ("SALES", "READER")

        with pytest.raises(ValueError):
            parse_namespaced_role_name("READER")


class TestNotInternalizable:
    @pytest.mark.parametrize(
        "external_id,kind,expected",
        [
            ("ORGADMIN", RoleKind.ACCOUNT, True),
            ("accountadmin", RoleKind.ACCOUNT, True),
            ("ANALYST", RoleKind.ACCOUNT, False),
            ("DATABASEROLE###DATABASE:SALES###ROLE:READER", RoleKind.DATABASE, False),
            ("DATABASEROLE###DATABASE:SALES", RoleKind.DATABASE, True),
            ("APPLICATIONROLE###APPLICATION:APP###ROLE:R", RoleKind.APPLICATION, True),
        ],
    )
    def test_is_not_internalizable_role(self, external_id, kind, expected):
        assert is_not_internalizable_role(external_id, kind) is expected
