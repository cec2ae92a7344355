import pytest

from accessfrost.error import RepositoryError
from accessfrost.models import Tag
from accessfrost.repository import (
    DbEntity,
    DescribePolicyEntity,
    GrantToRole,
    PolicyReferenceEntity,
    ShareEntity,
)
from accessfrost.role_scope import AccountRole, ApplicationRole, DatabaseRole
from accessfrost.sync_from_target import AccessFromTargetSyncer

ANALYSTS = AccountRole("ANALYSTS")


@pytest.fixture
def import_access_providers(context):
    def _import():
        return {ap.id: ap for ap in AccessFromTargetSyncer(context).sync()}

    return _import


class TestImportRoles:
    def test_account_role(self, import_access_providers, repository):
        repository.add_role(ANALYSTS, owner="SECURITYADMIN", comment="Analysts")
        repository.add_grant(ANALYSTS, "USAGE", "DATABASE", "DB")
        repository.add_grant(ANALYSTS, "USAGE", "SCHEMA", "DB.S")
        repository.add_grant(ANALYSTS, "SELECT", "TABLE", "DB.S.T")
        repository.add_grant(ANALYSTS, "INSERT", "TABLE", "DB.S.T")
        repository.add_grant(ANALYSTS, "OWNERSHIP", "TABLE", "DB.S.OWNED")
        repository.add_grant(ANALYSTS, "SELECT", "VIEW", "DB.S.V")
        repository.add_grant(ANALYSTS, "USAGE", "ROLE", "OTHER")
        repository.add_grantee(ANALYSTS, "USER", "alice")
        repository.add_grantee(ANALYSTS, "ROLE", "REPORTING")
        repository.add_grantee(ANALYSTS, "SHARE", "PARTNERS")
        repository.tags["ROLE"] = {"ANALYSTS": [Tag("OWNER", "alice")]}

        access_providers = import_access_providers()

        assert access_providers["ANALYSTS"].to_dict() == {
            "id": "ANALYSTS",
            "name": "ANALYSTS",
            "action": "grant",
            "naming_hint": "ANALYSTS",
            "external_id": "ANALYSTS",
            "actual_name": "ANALYSTS",
            "type": "role",
            "description": "Analysts",
            "who": {
                "users": ["alice"],
                "inherit_from": ["REPORTING", "share:PARTNERS"],
            },
            "what": [
                {
                    "data_object": {"full_name": "DB.S.T", "type": "table"},
                    "permissions": ["SELECT", "INSERT"],
                },
                {
                    "data_object": {"full_name": "DB.S.V", "type": "view"},
                    "permissions": ["SELECT"],
                },
            ],
            "tags": [{"key": "OWNER", "value": "alice"}],
        }

    def test_system_roles_are_read_only(self, import_access_providers, repository):
        repository.add_role(AccountRole("SYSADMIN"))

        assert import_access_providers()["SYSADMIN"].not_internalizable

    def test_excluded_roles(self, import_access_providers, repository, settings):
        settings.excluded_roles = ["ADMIN"]
        repository.add_role(AccountRole("ADMIN"))
        repository.add_role(ANALYSTS)
        repository.add_grantee(ANALYSTS, "ROLE", "ADMIN")

        access_providers = import_access_providers()

        assert list(access_providers) == ["ANALYSTS"]
        assert access_providers["ANALYSTS"].incomplete
        assert access_providers["ANALYSTS"].who.inherit_from == []

    def test_tag_errors_are_logged(self, import_access_providers, repository):
        repository.failures["get_tags_by_domain"] = RepositoryError("no access")
        repository.add_role(ANALYSTS)

        assert import_access_providers()["ANALYSTS"].tags == []

    @pytest.mark.parametrize("link_groups", [True, False])
    def test_roles_from_an_identity_store(
        self, import_access_providers, repository, settings, link_groups
    ):
        settings.external_identity_store_owners = ["SCIM_PROVISIONER"]
        settings.link_to_external_identity_store_groups = link_groups
        repository.add_role(ANALYSTS, owner="scim_provisioner")
        repository.add_grantee(ANALYSTS, "USER", "alice")

        ap = import_access_providers()["ANALYSTS"]

        if link_groups:
            assert ap.who.groups == ["ANALYSTS"]
            assert ap.who.users == []
            assert ap.who_locked and ap.inheritance_locked
            assert ap.name_locked and ap.delete_locked
            assert not ap.not_internalizable
        else:
            assert ap.who.users == ["alice"]
            assert ap.not_internalizable

    def test_database_roles(self, import_access_providers, repository, settings):
        settings.database_roles = True
        repository.add_table("DB", "S", "T")
        readers = DatabaseRole("DB", "READERS")
        repository.add_role(readers)
        repository.add_grant(readers, "SELECT", "TABLE", "DB.S.T")
        repository.add_grantee(readers, "DATABASE_ROLE", "DB.WRITERS")

        ap = import_access_providers()["DATABASEROLE###DATABASE:DB###ROLE:READERS"]

        assert ap.name == "DB.READERS"
        assert ap.type == "database-role"
        assert ap.who.inherit_from == ["DATABASEROLE###DATABASE:DB###ROLE:WRITERS"]
        assert ap.what[0].data_object.full_name == "DB.S.T"
        assert ap.who_locked and ap.what_locked

    def test_database_roles_are_not_read_by_default(
        self, import_access_providers, repository
    ):
        repository.add_table("DB", "S", "T")
        repository.add_role(DatabaseRole("DB", "READERS"))

        assert import_access_providers() == {}

    def test_application_roles(self, import_access_providers, repository, settings):
        settings.applications = True
        repository.applications = [DbEntity("APP")]
        repository.add_role(ApplicationRole("APP", "VIEWER"))
        repository.failures["get_grants_to_role"] = RepositoryError("not allowed")

        access_providers = import_access_providers()
        ap = access_providers["APPLICATIONROLE###APPLICATION:APP###ROLE:VIEWER"]

        assert ap.what == []
        assert ap.not_internalizable
        assert ap.delete_locked

    def test_inbound_share_adds_imported_privileges(
        self, import_access_providers, repository
    ):
        repository.inbound_shares = [DbEntity("SHARED", "IMPORTED DATABASE")]
        repository.add_role(ANALYSTS)
        repository.add_grant(ANALYSTS, "SELECT", "TABLE", "SHARED.S.T")
        repository.add_grant(ANALYSTS, "SELECT", "TABLE", "SHARED.S.U")

        ap = import_access_providers()["ANALYSTS"]

        assert [(w.data_object.full_name, w.permissions) for w in ap.what] == [
            ("SHARED", ["IMPORTED PRIVILEGES"]),
            ("SHARED.S.T", ["SELECT"]),
            ("SHARED.S.U", ["SELECT"]),
        ]


class TestImportShares:
    def test_outbound_share(self, import_access_providers, repository):
        repository.outbound_shares = [
            ShareEntity("PARTNERS", "DB", "ACCOUNTADMIN", "ORG1.A1, ORG2.A2"),
            ShareEntity("PARTNERS", "DB", "ACCOUNTADMIN", "ORG3.A3"),
        ]
        repository.share_grants["PARTNERS"] = [
            GrantToRole("USAGE", "DATABASE", "DB"),
            GrantToRole("SELECT", "TABLE", "DB.S.T"),
        ]

        ap = import_access_providers()["share:PARTNERS"]

        assert ap.action == "share"
        assert ap.actual_name == "PARTNERS"
        assert ap.who.recipients == ["ORG1.A1", "ORG2.A2", "ORG3.A3"]
        assert [(w.data_object.full_name, w.permissions) for w in ap.what] == [
            ("DB.S.T", ["SELECT"])
        ]

    def test_share_with_multiple_databases_is_skipped(
        self, import_access_providers, repository
    ):
        repository.outbound_shares = [
            ShareEntity("PARTNERS", "DB1", "", "ORG1.A1"),
            ShareEntity("PARTNERS", "DB2", "", "ORG2.A2"),
        ]

        assert import_access_providers() == {}


class TestImportPolicies:
    @pytest.fixture
    def policies(self, repository):
        repository.add_policy("MASKING_POLICY", "DB", "S", "PII")
        repository.add_policy(
            "MASKING_POLICY", "DB", "S", "ACCESSFROST_EMAIL_x_VARCHAR"
        )
        repository.add_policy("ROW_ACCESS_POLICY", "DB", "S", "REGION")
        repository.descriptions[("MASKING", "DB", "S", "PII")] = [
            DescribePolicyEntity("PII", "CASE WHEN TRUE THEN val END")
        ]
        repository.descriptions[("ROW ACCESS", "DB", "S", "REGION")] = [
            DescribePolicyEntity("REGION", "TRUE")
        ]
        repository.references[("DB", "S", "PII")] = [
            PolicyReferenceEntity(
                "DB", "S", "PII", "MASKING_POLICY", "DB", "S", "T", "TABLE", "EMAIL"
            ),
            PolicyReferenceEntity(
                "DB",
                "S",
                "PII",
                "MASKING_POLICY",
                "DB",
                "S",
                "T",
                "TABLE",
                "PHONE",
                "INACTIVE",
            ),
        ]
        repository.references[("DB", "S", "REGION")] = [
            PolicyReferenceEntity(
                "DB", "S", "REGION", "ROW_ACCESS_POLICY", "DB", "S", "T", "TABLE"
            )
        ]

    def test_policies(self, import_access_providers, policies):
        access_providers = import_access_providers()

        assert list(access_providers) == ["DB-S-PII", "DB-S-REGION"]

        mask = access_providers["DB-S-PII"]
        assert mask.action == "mask"
        assert mask.not_internalizable
        assert mask.policy == "CASE WHEN TRUE THEN val END"
        assert [w.data_object.to_dict() for w in mask.what] == [
            {"full_name": "DB.S.T.EMAIL", "type": "column"}
        ]

        row_filter = access_providers["DB-S-REGION"]
        assert row_filter.action == "filtered"
        assert [w.data_object.to_dict() for w in row_filter.what] == [
            {"full_name": "DB.S.T", "type": "table"}
        ]

    def test_skip_columns(self, import_access_providers, policies, settings):
        settings.skip_columns = True

        assert list(import_access_providers()) == ["DB-S-REGION"]

    def test_standard_edition(
        self, import_access_providers, policies, repository, settings
    ):
        settings.standard_edition = True
        repository.failures["get_tags_by_domain"] = AssertionError("not expected")
        repository.add_role(ANALYSTS)

        assert list(import_access_providers()) == ["ANALYSTS"]

    def test_unsupported_feature(self, import_access_providers, repository):
        repository.failures["get_policies"] = RepositoryError(
            "Unsupported feature 'ROW ACCESS POLICY'"
        )

        assert import_access_providers() == {}

    def test_policy_listing_failure_aborts(self, context, repository):
        repository.failures["get_policies"] = RepositoryError("connection lost")

        with pytest.raises(RepositoryError):
            AccessFromTargetSyncer(context).sync()
