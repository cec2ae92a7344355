import pytest

from accessfrost.error import RepositoryError
from accessfrost.masks_applier import MasksApplier
from accessfrost.mutation_classifier import Classification
from accessfrost.repository import MaskPolicyDefinition
from accessfrost.role_scope import AccountRole
from accessfrost_test_utils.access_provider_builder import AccessProviderBuilder

UNIQUE_NAME = "ACCESSFROST_CUSTOMER_EMAIL_abcd1234"


@pytest.fixture(autouse=True)
def fixed_suffix(mocker):
    mocker.patch("accessfrost.masks_applier.random_suffix", return_value="abcd1234")


@pytest.fixture
def apply_masks(context, feedback_handler):
    def _apply(*masks, role_by_id=None):
        classification = Classification(
            masks=list(masks), role_by_id=dict(role_by_id or {})
        )
        MasksApplier(context, classification, feedback_handler).apply()

    return _apply


def email_mask():
    return (
        AccessProviderBuilder("m1", "Customer email", action="mask")
        .with_what("DB.S.CUSTOMERS.EMAIL", "column")
        .with_mask_type("SHA256")
    )


class TestMasksApplier:
    def test_create_mask(self, apply_masks, repository, feedback_handler):
        repository.column_types["DB.S.CUSTOMERS.EMAIL"] = "VARCHAR"

        apply_masks(
            email_mask().with_inherit_from("ID:ap1").with_users("alice").build(),
            role_by_id={"ap1": AccountRole("ANALYSTS")},
        )

        [(database, schema, definitions)] = repository.calls_to(
            "create_mask_policies"
        )
        assert (database, schema) == ("DB", "S")
        assert definitions == [
            MaskPolicyDefinition(
                f"DB.S.{UNIQUE_NAME}_VARCHAR",
                f"CREATE MASKING POLICY DB.S.{UNIQUE_NAME}_VARCHAR AS "
                "(val VARCHAR) RETURNS VARCHAR ->\n"
                "CASE\n"
                "\tWHEN (IS_ROLE_IN_SESSION('ANALYSTS')) THEN val\n"
                "\tWHEN current_user() IN ('alice') THEN val\n"
                "\tELSE SHA2(val, 256)\n"
                "END;",
                ["DB.S.CUSTOMERS.EMAIL"],
            )
        ]
        assert [fb.to_dict() for fb in feedback_handler.feedback] == [
            {
                "access_provider": "m1",
                "external_id": UNIQUE_NAME,
                "actual_name": UNIQUE_NAME,
            }
        ]

    def test_one_policy_per_schema_and_type(self, apply_masks, repository):
        repository.column_types.update(
            {
                "DB.S.T.A": "VARCHAR",
                "DB.S.T.B": "NUMBER",
                "DB.S.U.C": "VARCHAR",
                "DB.OTHER.T.D": "VARCHAR",
            }
        )
        mask = AccessProviderBuilder("m1", "Mask", action="mask")
        for column in repository.column_types:
            mask.with_what(column, "column")

        apply_masks(mask.build())

        created = [
            (database, schema, [(d.policy_name, d.columns) for d in definitions])
            for database, schema, definitions in repository.calls_to(
                "create_mask_policies"
            )
        ]
        assert created == [
            (
                "DB",
                "S",
                [
                    (
                        "DB.S.ACCESSFROST_MASK_abcd1234_VARCHAR",
                        ["DB.S.T.A", "DB.S.U.C"],
                    ),
                    ("DB.S.ACCESSFROST_MASK_abcd1234_NUMBER", ["DB.S.T.B"]),
                ],
            ),
            (
                "DB",
                "OTHER",
                [("DB.OTHER.ACCESSFROST_MASK_abcd1234_VARCHAR", ["DB.OTHER.T.D"])],
            ),
        ]

    def test_policies_of_previous_runs_are_dropped(self, apply_masks, repository):
        repository.column_types["DB.S.CUSTOMERS.EMAIL"] = "VARCHAR"
        repository.add_policy(
            "MASKING_POLICY", "DB", "S", "ACCESSFROST_CUSTOMER_EMAIL_Old12345_VARCHAR"
        )
        repository.add_policy(
            "MASKING_POLICY", "DB", "S", "ACCESSFROST_CUSTOMER_EMAIL_Old12345_NUMBER"
        )
        repository.add_policy(
            "MASKING_POLICY", "DB", "S", "ACCESSFROST_CUSTOMER_EMAIL_EXTRA_VARCHAR"
        )

        apply_masks(email_mask().build())

        assert repository.calls_to("drop_mask_policy") == [
            ("DB", "S", "ACCESSFROST_CUSTOMER_EMAIL_Old12345")
        ]

    def test_unknown_column_type(self, apply_masks, repository, feedback_handler):
        apply_masks(email_mask().build())

        assert repository.mutations() == []
        assert feedback_handler.feedback[0].errors == ["unable to load column details"]

    def test_fallback_is_reported_as_warning(
        self, apply_masks, repository, feedback_handler
    ):
        repository.column_types["DB.S.CUSTOMERS.EMAIL"] = "NUMBER"

        apply_masks(email_mask().build())

        assert feedback_handler.feedback[0].errors == []
        assert len(feedback_handler.feedback[0].warnings) == 1

    def test_invalid_column_name_is_skipped(self, apply_masks, repository):
        apply_masks(
            AccessProviderBuilder("m1", "Mask", action="mask")
            .with_what("DB.S.T", "table")
            .build()
        )

        assert repository.calls_to("create_mask_policies") == []

    def test_standard_edition(
        self, apply_masks, repository, settings, feedback_handler
    ):
        settings.standard_edition = True

        apply_masks(email_mask().build())

        assert repository.calls == []
        assert feedback_handler.feedback[0].errors == [
            "masking policies are not supported on Standard Edition"
        ]


class TestRemoveMasks:
    def test_remove_in_every_schema(self, apply_masks, repository, feedback_handler):
        repository.add_policy("MASKING_POLICY", "DB", "S2", f"{UNIQUE_NAME}_VARCHAR")
        repository.add_policy("MASKING_POLICY", "DB", "S1", f"{UNIQUE_NAME}_VARCHAR")
        repository.add_policy("MASKING_POLICY", "DB", "S1", f"{UNIQUE_NAME}_NUMBER")

        apply_masks(email_mask().with_external_id(UNIQUE_NAME).deleted().build())

        assert repository.calls_to("drop_mask_policy") == [
            ("DB", "S1", UNIQUE_NAME),
            ("DB", "S2", UNIQUE_NAME),
        ]
        assert feedback_handler.feedback[0].errors == []

    def test_remove_without_external_id(
        self, apply_masks, repository, feedback_handler
    ):
        apply_masks(email_mask().deleted().build())

        assert repository.calls == []
        assert feedback_handler.feedback[0].to_dict() == {"access_provider": "m1"}

    def test_remove_failure(self, apply_masks, repository, feedback_handler):
        repository.add_policy("MASKING_POLICY", "DB", "S", f"{UNIQUE_NAME}_VARCHAR")
        repository.failures["drop_mask_policy"] = RepositoryError("not authorized")

        apply_masks(email_mask().with_external_id(UNIQUE_NAME).deleted().build())

        assert feedback_handler.feedback[0].errors == ["not authorized"]
