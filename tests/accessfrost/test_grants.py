from accessfrost.grants import (
    ACCOUNT,
    Grant,
    GrantSet,
    diff_grants,
    function_full_name,
    function_name_from_grant,
)


class TestGrantSet:
    def test_iterates_from_database_down(self):
        grants = GrantSet(
            [
                Grant("USAGE", "warehouse", "WH"),
                Grant("SELECT", "table", "DB.S.T"),
                Grant("USAGE", "schema", "DB.S"),
                Grant("USAGE", "database", "DB"),
            ]
        )

        assert [grant.on_type for grant in grants] == [
            "database",
            "schema",
            "table",
            "warehouse",
        ]

    def test_deduplicates(self):
        grants = GrantSet([Grant("USAGE", "database", "DB")])
        grants.add(Grant("USAGE", "database", "DB"))

        assert len(grants) == 1

    def test_on_with_type(self):
        assert Grant("SELECT", "view", "DB.S.V").on_with_type() == "VIEW DB.S.V"
        assert (
            Grant("SELECT", "external-table", "DB.S.E").on_with_type()
            == "EXTERNAL TABLE DB.S.E"
        )
        assert Grant("CREATE ROLE", ACCOUNT, "").on_with_type() == "ACCOUNT"


class TestDiffGrants:
    def test_diff(self):
        found = [Grant("SELECT", "table", "DB.S.A"), Grant("SELECT", "table", "DB.S.B")]
        expected = [
            Grant("SELECT", "table", "DB.S.B"),
            Grant("SELECT", "table", "DB.S.C"),
        ]

        to_add, to_remove = diff_grants(found, expected)

        assert to_add == [Grant("SELECT", "table", "DB.S.C")]
        assert to_remove == [Grant("SELECT", "table", "DB.S.A")]

    def test_diff_after_applying_is_empty(self):
        expected = [Grant("USAGE", "database", "DB"), Grant("SELECT", "table", "T")]

        assert diff_grants(expected, expected) == ([], [])


class TestFunctionNames:
    def test_function_full_name(self):
        assert (
            function_full_name("DB", "S", "decrypt", "(VAL VARCHAR, KEY VARCHAR)")
            == 'DB.S."decrypt"(VARCHAR, VARCHAR)'
        )

    def test_function_name_from_grant(self):
        assert (
            function_name_from_grant('DB.S."DECRYPT(VAL VARCHAR):VARCHAR(16777216)"')
            == 'DB.S."DECRYPT"(VARCHAR)'
        )

    def test_function_name_without_arguments_is_kept(self):
        assert function_name_from_grant("DB.S.NOT_A_FUNCTION") == "DB.S.NOT_A_FUNCTION"
