import pytest
from sqlalchemy.exc import SQLAlchemyError

from accessfrost.error import RepositoryError, RowLimitExceededError
from accessfrost.models import Tag
from accessfrost.repository import MaskPolicyDefinition
from accessfrost.role_scope import AccountRole, ApplicationRole, DatabaseRole
from accessfrost.snowflake_connector import SnowflakeConnector
from accessfrost.snowflake_repository import ROW_LIMIT, SnowflakeRepository


@pytest.fixture
def connector(mocker):
    connector = mocker.MagicMock(spec=SnowflakeConnector)
    connector.fetch_all.return_value = []
    return connector


@pytest.fixture
def sf_repository(connector):
    return SnowflakeRepository(connector, role="securityadmin")


def executed(connector):
    """Every statement sent, single or batched, in order."""
    statements = []
    for call in connector.mock_calls:
        name, args, _ = call
        if name == "run_query":
            statements.append(args[0])
        elif name == "execute_statements":
            statements.extend(args[0])
    return statements


class TestSnowflakeRepositoryQueries:
    def test_get_account_roles_hides_the_protected_role(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {"name": "AP_ROLE", "owner": "SECURITYADMIN", "comment": "x"},
            {"name": "SECURITYADMIN", "owner": "", "comment": None},
        ]

        roles = sf_repository.get_account_roles("AP")

        connector.fetch_all.assert_called_with("SHOW ROLES LIKE 'AP%'")
        assert [role.name for role in roles] == ["AP_ROLE"]
        assert roles[0].owner == "SECURITYADMIN"

    def test_protected_role_is_read_from_the_connection(self, connector):
        connector.get_current_role.return_value = "sysadmin"
        sf_repository = SnowflakeRepository(connector)

        assert sf_repository.role == "SYSADMIN"
        assert sf_repository.is_protected(AccountRole("SYSADMIN"))
        assert not sf_repository.is_protected(DatabaseRole("DB", "SYSADMIN"))

    def test_listing_that_reaches_the_row_limit_fails(self, connector, sf_repository):
        connector.fetch_all.return_value = [{"name": "R"}] * ROW_LIMIT

        with pytest.raises(RowLimitExceededError) as exc:
            sf_repository.get_account_roles()

        assert "exceeded the maximum of 10000 elements" in str(exc.value)

    def test_driver_errors_are_wrapped(self, connector, sf_repository):
        connector.fetch_all.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(RepositoryError, match="connection lost"):
            sf_repository.get_databases()

    def test_get_databases_keeps_standard_databases(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {"name": "DB1", "kind": "STANDARD"},
            {"name": "SHARED", "kind": "IMPORTED DATABASE"},
        ]

        databases = sf_repository.get_databases()

        connector.fetch_all.assert_called_with("SHOW DATABASES IN ACCOUNT")
        assert [db.name for db in databases] == ["DB1"]

    def test_shares_are_split_by_kind(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {"name": "OUT", "kind": "OUTBOUND", "database_name": "DB1", "to": "A1,A2"},
            {"name": "IN", "kind": "INBOUND", "database_name": "SHARED_DB"},
            {"name": "PENDING", "kind": "INBOUND", "database_name": ""},
        ]

        outbound = sf_repository.get_outbound_shares()
        inbound = sf_repository.get_inbound_shares()

        assert [(s.name, s.database_name, s.to) for s in outbound] == [
            ("OUT", "DB1", "A1,A2")
        ]
        assert [db.name for db in inbound] == ["SHARED_DB"]

    def test_get_grants_to_database_role(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {"privilege": "SELECT", "granted_on": "TABLE", "name": "DB.S.T"}
        ]

        grants = sf_repository.get_grants_to_role(DatabaseRole("DB", "R1"))

        connector.fetch_all.assert_called_with("SHOW GRANTS TO DATABASE ROLE DB.R1")
        assert grants[0].privilege == "SELECT"
        assert grants[0].name == "DB.S.T"

    def test_get_column_types(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {
                "table_catalog": "DB",
                "table_schema": "S",
                "table_name": "T",
                "column_name": "EMAIL",
                "data_type": "TEXT",
            }
        ]

        column_types = sf_repository.get_column_types("DB", ["DB.S.T.EMAIL"])

        connector.fetch_all.assert_called_with(
            "SELECT * FROM DB.INFORMATION_SCHEMA.COLUMNS WHERE "
            "CONCAT_WS('.', TABLE_CATALOG, TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME) "
            "IN ('DB.S.T.EMAIL')"
        )
        assert column_types == {"DB.S.T.EMAIL": "TEXT"}

    def test_get_policies_like_is_upper_cased(self, connector, sf_repository):
        sf_repository.get_policies("ROW ACCESS", like="accessfrost_x%")

        connector.fetch_all.assert_called_with(
            "SHOW ROW ACCESS POLICIES LIKE 'ACCESSFROST_X%' IN ACCOUNT"
        )

    def test_get_tags_by_domain(self, connector, sf_repository):
        connector.fetch_all.return_value = [
            {
                "object_name": "ROLE_1",
                "tag_name": "OWNER",
                "tag_value": "email:a@b.c",
            },
            {"object_name": "ROLE_1", "tag_name": "TEAM", "tag_value": "data"},
        ]

        tags = sf_repository.get_tags_by_domain("ROLE")

        assert "domain = 'ROLE'" in connector.fetch_all.call_args.args[0]
        assert tags == {
            "ROLE_1": [Tag("OWNER", "email:a@b.c"), Tag("TEAM", "data")]
        }


class TestSnowflakeRepositoryMutations:
    def test_create_database_role(self, connector, sf_repository):
        sf_repository.create_role(DatabaseRole("DB1", "READERS"))

        assert executed(connector) == ["CREATE DATABASE ROLE IF NOT EXISTS DB1.READERS"]

    def test_application_roles_can_not_be_created(self, sf_repository):
        with pytest.raises(RepositoryError):
            sf_repository.create_role(ApplicationRole("APP", "VIEWER"))

    def test_protected_role_is_never_touched(self, connector, sf_repository):
        sf_repository.create_role(AccountRole("SECURITYADMIN"))
        sf_repository.drop_role(AccountRole("SECURITYADMIN"))
        sf_repository.execute_grant_on_role(
            "SELECT", "TABLE DB.S.T", AccountRole("SECURITYADMIN")
        )
        sf_repository.grant_users_to_role(AccountRole("SECURITYADMIN"), ["U1"])
        sf_repository.grant_role_to_roles(
            AccountRole("SECURITYADMIN"), [AccountRole("ANALYST")]
        )
        sf_repository.comment_role_if_exists(AccountRole("SECURITYADMIN"), "x")
        sf_repository.rename_role(AccountRole("SECURITYADMIN"), AccountRole("B"))

        assert executed(connector) == []

    def test_drop_role_takes_ownership_first(self, connector, sf_repository):
        sf_repository.drop_role(AccountRole("OLD ROLE"))

        assert executed(connector) == [
            'GRANT OWNERSHIP ON ROLE "OLD ROLE" TO ROLE SECURITYADMIN',
            'DROP ROLE "OLD ROLE"',
        ]

    def test_rename_role(self, connector, sf_repository):
        sf_repository.rename_role(AccountRole("A"), AccountRole("B"))

        assert executed(connector) == ["ALTER ROLE IF EXISTS A RENAME TO B"]

    def test_grant_on_database_role(self, connector, sf_repository):
        sf_repository.execute_grant_on_role(
            "USAGE", "SCHEMA DB.S", DatabaseRole("DB", "R")
        )

        assert executed(connector) == [
            "GRANT USAGE ON SCHEMA DB.S TO DATABASE ROLE DB.R"
        ]

    def test_users_are_granted_in_batches(self, connector, sf_repository):
        users = [f"USER_{index}" for index in range(450)]

        sf_repository.grant_users_to_role(AccountRole("R"), users)

        batches = [
            call.args[0] for call in connector.execute_statements.call_args_list
        ]
        assert [len(batch) for batch in batches] == [200, 200, 50]
        assert batches[0][0] == "GRANT ROLE R TO USER USER_0"

    def test_grant_role_to_roles_creates_missing_grantees(
        self, connector, sf_repository
    ):
        sf_repository.grant_role_to_roles(
            DatabaseRole("DB", "R"), [AccountRole("ANALYST"), DatabaseRole("DB", "O")]
        )

        assert executed(connector) == [
            "CREATE ROLE IF NOT EXISTS ANALYST",
            "GRANT DATABASE ROLE DB.R TO ROLE ANALYST",
            "CREATE DATABASE ROLE IF NOT EXISTS DB.O",
            "GRANT DATABASE ROLE DB.R TO DATABASE ROLE DB.O",
        ]

    def test_comment_failure_is_ignored(self, connector, sf_repository):
        connector.run_query.side_effect = SQLAlchemyError("not owner")

        sf_repository.comment_role_if_exists(AccountRole("R"), "Created by 'me'")

        connector.run_query.assert_called_with(
            "COMMENT IF EXISTS ON ROLE R IS 'Created by me'"
        )

    def test_set_tag_requires_a_full_tag_name(self, connector, sf_repository):
        with pytest.raises(ValueError, match="3 parts"):
            sf_repository.set_tag_on_role(AccountRole("R"), "OWNER", "x")

        sf_repository.set_tag_on_role(AccountRole("R"), "GOV.TAGS.OWNER", "x")

        assert executed(connector) == ["ALTER ROLE R SET TAG GOV.TAGS.OWNER = 'x'"]

    def test_set_share_accounts(self, connector, sf_repository):
        sf_repository.set_share_accounts("ACCESSFROST_S", ["ORG.A1", "ORG.A2"])

        assert executed(connector) == [
            "ALTER SHARE ACCESSFROST_S SET ACCOUNTS=ORG.A1,ORG.A2"
        ]

    def test_dry_run_only_records_statements(self, connector, mocker):
        sf_repository = SnowflakeRepository(
            connector, role="securityadmin", dry_run=True
        )

        sf_repository.create_role(AccountRole("R"))
        sf_repository.grant_users_to_role(AccountRole("R"), ["U1", "U2"])

        connector.run_query.assert_not_called()
        connector.execute_statements.assert_not_called()
        assert sf_repository.executed == [
            "CREATE ROLE IF NOT EXISTS R",
            "GRANT ROLE R TO USER U1",
            "GRANT ROLE R TO USER U2",
        ]


class TestSnowflakeRepositoryPolicies:
    def test_create_mask_policies(self, connector, sf_repository):
        connector.fetch_all.return_value = [{"table_type": "VIEW"}]
        definition = MaskPolicyDefinition(
            "DB.S.ACCESSFROST_PII_abcdefgh_TEXT",
            "CREATE MASKING POLICY ...;",
            ["DB.S.V.EMAIL", "DB.S.V.PHONE"],
        )

        sf_repository.create_mask_policies("DB", "S", [definition])

        assert executed(connector) == [
            "GRANT CREATE MASKING POLICY ON SCHEMA DB.S TO ROLE SECURITYADMIN",
            "CREATE MASKING POLICY ...;",
            'ALTER VIEW DB.S.V ALTER COLUMN "EMAIL" SET MASKING POLICY '
            "DB.S.ACCESSFROST_PII_abcdefgh_TEXT FORCE",
            'ALTER VIEW DB.S.V ALTER COLUMN "PHONE" SET MASKING POLICY '
            "DB.S.ACCESSFROST_PII_abcdefgh_TEXT FORCE",
        ]

    def test_account_admin_does_not_grant_itself(self, connector):
        sf_repository = SnowflakeRepository(connector, role="accountadmin")
        connector.fetch_all.return_value = [{"table_type": "BASE TABLE"}]
        definition = MaskPolicyDefinition("DB.S.P_TEXT", "CREATE ...;", ["DB.S.T.C"])

        sf_repository.create_mask_policies("DB", "S", [definition])

        assert executed(connector)[0] == "CREATE ...;"

    def test_drop_mask_policy_unsets_references_first(self, connector, sf_repository):
        connector.fetch_all.side_effect = [
            [
                {
                    "name": "ACCESSFROST_PII_abcdefgh_TEXT",
                    "database_name": "DB",
                    "schema_name": "S",
                    "kind": "MASKING_POLICY",
                }
            ],
            [
                {
                    "policy_db": "DB",
                    "policy_schema": "S",
                    "policy_name": "ACCESSFROST_PII_abcdefgh_TEXT",
                    "policy_kind": "MASKING_POLICY",
                    "ref_database_name": "DB",
                    "ref_schema_name": "S",
                    "ref_entity_name": "T",
                    "ref_entity_domain": "TABLE",
                    "ref_column_name": "EMAIL",
                }
            ],
        ]

        sf_repository.drop_mask_policy("DB", "S", "ACCESSFROST_PII_abcdefgh")

        assert executed(connector) == [
            "ALTER TABLE DB.S.T ALTER COLUMN EMAIL UNSET MASKING POLICY",
            "DROP MASKING POLICY DB.S.ACCESSFROST_PII_abcdefgh_TEXT",
        ]

    def test_update_filter_replaces_the_attached_policy(
        self, connector, sf_repository
    ):
        connector.fetch_all.side_effect = [
            [
                {
                    "table_catalog": "DB",
                    "table_schema": "S",
                    "table_name": "T",
                    "column_name": "state",
                    "data_type": "VARCHAR",
                }
            ],
            [{"policy_name": "OLD_FILTER"}],
        ]

        sf_repository.update_filter(
            "DB", "S", "T", "accessfrost_S_T_abcdefgh_filter", ["state"], "(x)"
        )

        assert executed(connector) == [
            "GRANT CREATE ROW ACCESS POLICY ON SCHEMA DB.S TO ROLE SECURITYADMIN",
            "CREATE ROW ACCESS POLICY DB.S.accessfrost_S_T_abcdefgh_filter AS "
            "(state VARCHAR) returns boolean ->\n\t(x)",
            "ALTER TABLE DB.S.T DROP ROW ACCESS POLICY DB.S.OLD_FILTER, "
            "ADD ROW ACCESS POLICY DB.S.accessfrost_S_T_abcdefgh_filter on (state)",
            "DROP ROW ACCESS POLICY IF EXISTS DB.S.OLD_FILTER",
        ]

    def test_update_filter_requires_every_argument_type(
        self, connector, sf_repository
    ):
        connector.fetch_all.return_value = []

        with pytest.raises(RepositoryError, match="does not match"):
            sf_repository.update_filter("DB", "S", "T", "f", ["state"], "(x)")

    def test_update_filter_without_columns_is_refused(self, connector, sf_repository):
        with pytest.raises(RepositoryError, match="at least one column"):
            sf_repository.update_filter("DB", "S", "T", "f", [], "FALSE")

        assert connector.fetch_all.call_count == 0
        assert executed(connector) == []

    def test_drop_filter(self, connector, sf_repository):
        connector.fetch_all.return_value = [{"policy_name": "CURRENT"}]

        sf_repository.drop_filter("DB", "S", "T", "accessfrost_S_T_abcdefgh_filter")

        assert executed(connector) == [
            "ALTER TABLE DB.S.T DROP ROW ACCESS POLICY DB.S.CURRENT",
            "DROP ROW ACCESS POLICY IF EXISTS DB.S.accessfrost_S_T_abcdefgh_filter",
        ]
