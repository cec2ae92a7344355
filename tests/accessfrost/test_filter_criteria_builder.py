import pytest

from accessfrost.error import AccessProviderError
from accessfrost.filter_criteria_builder import (
    FilterCriteriaBuilder,
    filter_expression,
    policy_rule_expression,
)
from accessfrost_test_utils.access_provider_builder import AccessProviderBuilder


def column(name):
    return {
        "reference": {
            "entity_type": "data_object",
            "entity_id": {"full_name": f"DB.S.T.{name}", "type": "column"},
        }
    }


def compare(operator, left, right):
    return {
        "comparison": {
            "operator": operator,
            "left_operand": left,
            "right_operand": right,
        }
    }


class TestFilterCriteriaBuilder:
    def test_comparison(self):
        query, arguments = FilterCriteriaBuilder().build(
            compare("equal", column("state"), {"literal": "NJ"})
        )

        assert query == "(state = 'NJ')"
        assert arguments == ["state"]

    def test_literal_on_the_left(self):
        query, arguments = FilterCriteriaBuilder().build(
            compare("greater_than_or_equal", {"literal": 100}, column("amount"))
        )

        assert query == "(100 >= amount)"
        assert arguments == ["amount"]

    def test_aggregator_and_not(self):
        expression = {
            "aggregator": {
                "operator": "or",
                "operands": [
                    compare("less_than", column("amount"), {"literal": 1.5}),
                    {
                        "unary_expression": {
                            "operator": "not",
                            "operand": compare(
                                "not_equal", column("state"), {"literal": "it's"}
                            ),
                        }
                    },
                    compare("equal", column("amount"), {"literal": True}),
                ],
            }
        }

        query, arguments = FilterCriteriaBuilder().build(expression)

        assert query == (
            "((amount < 1.500000) OR (NOT (state != 'it''s')) OR (amount = TRUE))"
        )
        assert arguments == ["amount", "state"]

    def test_literal_expression(self):
        assert FilterCriteriaBuilder().build({"literal": False}) == ("FALSE", [])

    def test_reference_as_json(self):
        operand = {
            "reference": {
                "entity_type": "DataObject",
                "entity_id": '{"fullName": "DB.S.T.state", "type": "column"}',
            }
        }

        query, _ = FilterCriteriaBuilder().build(
            compare("equal", operand, {"literal": "NJ"})
        )

        assert query == "(state = 'NJ')"

    @pytest.mark.parametrize(
        "expression",
        [
            compare("like", column("state"), {"literal": "N%"}),
            compare("equal", column("state"), {"literal": None}),
            compare("equal", {"literal": "a"}, {"unknown": "b"}),
            {"aggregator": {"operator": "and", "operands": []}},
            {"unary_expression": {"operator": "minus", "operand": {"literal": 1}}},
            {"nothing": True},
            compare(
                "equal",
                {
                    "reference": {
                        "entity_type": "data_object",
                        "entity_id": {"full_name": "DB.S.T", "type": "table"},
                    }
                },
                {"literal": 1},
            ),
        ],
    )
    def test_invalid_expressions(self, expression):
        with pytest.raises(AccessProviderError):
            FilterCriteriaBuilder().build(expression)


class TestPolicyRule:
    def test_policy_rule_expression(self):
        assert policy_rule_expression("{state} = 'NJ' AND {amount} > 10") == (
            "state = 'NJ' AND amount > 10",
            ["state", "amount"],
        )

    def test_filter_criteria_wins(self):
        ap = (
            AccessProviderBuilder(action="filtered")
            .with_filter_criteria({"literal": True})
            .with_policy_rule("{state} = 'NJ'")
            .build()
        )

        assert filter_expression(ap) == ("TRUE", [])

    def test_no_predicate(self):
        with pytest.raises(AccessProviderError):
            filter_expression(AccessProviderBuilder(action="filtered").build())
