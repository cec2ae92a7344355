"""
Translate row filter predicates into the body of a row access policy.

A structured predicate is a tree of dictionaries. Every node holds exactly one
of the following keys:

    literal:           true / false
    comparison:        {operator, left_operand, right_operand}
    aggregator:        {operator: and | or, operands: [...]}
    unary_expression:  {operator: not, operand: {...}}

Comparison operands are either a `literal` (string, number or boolean) or a
`reference` to a column data object:

    reference:
        entity_type: data_object
        entity_id: {full_name: DB.SCHEMA.TABLE.COLUMN, type: column}

Every node that is not a literal is rendered between parentheses. Referenced
columns become arguments of the policy.
"""

import json
import re
from typing import Any, Dict, List, Tuple

from accessfrost.error import AccessProviderError
from accessfrost.models import AccessProvider

COMPARISON_OPERATORS = {
    "equal": "=",
    "not_equal": "!=",
    "less_than": "<",
    "less_than_or_equal": "<=",
    "greater_than": ">",
    "greater_than_or_equal": ">=",
}

AGGREGATOR_OPERATORS = {"and": "AND", "or": "OR"}

POLICY_RULE_ARGUMENT = re.compile(r"\{([a-zA-Z0-9]+)}")


class FilterCriteriaBuilder:
    def __init__(self) -> None:
        self._parts: List[str] = []
        self._arguments: List[str] = []

    def build(self, expression: Dict[str, Any]) -> Tuple[str, List[str]]:
        """Render an expression tree, returning the query and its arguments."""
        self._parts = []
        self._arguments = []
        self._visit_expression(expression)

        return "".join(self._parts), list(self._arguments)

    def _visit_expression(self, node: Dict[str, Any]) -> None:
        if not isinstance(node, dict):
            raise AccessProviderError(f"invalid filter expression {node!r}")

        if "literal" in node:
            self._write_literal(node["literal"])
        elif "comparison" in node:
            comparison = node["comparison"]
            operator = self._operator(
                COMPARISON_OPERATORS, comparison.get("operator"), "comparison"
            )

            self._parts.append("(")
            self._visit_operand(comparison.get("left_operand"))
            self._parts.append(f" {operator} ")
            self._visit_operand(comparison.get("right_operand"))
            self._parts.append(")")
        elif "aggregator" in node:
            aggregator = node["aggregator"]
            operator = self._operator(
                AGGREGATOR_OPERATORS, aggregator.get("operator"), "aggregator"
            )
            operands = aggregator.get("operands") or []
            if not operands:
                raise AccessProviderError("aggregator without operands")

            self._parts.append("(")
            for index, operand in enumerate(operands):
                if index:
                    self._parts.append(f" {operator} ")
                self._visit_expression(operand)
            self._parts.append(")")
        elif "unary_expression" in node:
            unary = node["unary_expression"]
            if str(unary.get("operator", "")).lower() != "not":
                raise AccessProviderError("unsupported unary operator")

            self._parts.append("(NOT ")
            self._visit_expression(unary.get("operand"))
            self._parts.append(")")
        else:
            raise AccessProviderError(f"invalid filter expression {node!r}")

    def _visit_operand(self, operand: Any) -> None:
        if not isinstance(operand, dict):
            raise AccessProviderError(f"invalid comparison operand {operand!r}")

        if "literal" in operand:
            self._write_literal(operand["literal"])
        elif "reference" in operand:
            self._write_reference(operand["reference"])
        else:
            raise AccessProviderError(f"invalid comparison operand {operand!r}")

    def _write_literal(self, value: Any) -> None:
        # bool before int, True is an int too
        if isinstance(value, bool):
            self._parts.append("TRUE" if value else "FALSE")
        elif isinstance(value, int):
            self._parts.append(str(value))
        elif isinstance(value, float):
            self._parts.append(f"{value:f}")
        elif isinstance(value, str):
            self._parts.append("'{}'".format(value.replace("'", "''")))
        else:
            raise AccessProviderError(
                f"literal of type {type(value).__name__} is not supported yet"
            )

    def _write_reference(self, reference: Dict[str, Any]) -> None:
        entity_type = reference.get("entity_type", "data_object")
        if entity_type.lower().replace("_", "") != "dataobject":
            raise AccessProviderError(
                f"unsupported reference entity type: {entity_type}"
            )

        data_object = reference.get("entity_id") or {}
        if isinstance(data_object, str):
            try:
                data_object = json.loads(data_object)
            except ValueError as exc:
                raise AccessProviderError(f"unmarshal reference entity id: {exc}")

        object_type = data_object.get("type")
        if object_type != "column":
            raise AccessProviderError(
                f"unsupported reference entity type: {object_type}"
            )

        full_name = data_object.get("full_name") or data_object.get("fullName", "")
        parts = full_name.split(".", 3)
        if len(parts) != 4:
            raise AccessProviderError(f"unsupported reference entity id: {full_name}")

        column = parts[3]
        self._parts.append(column)
        if column not in self._arguments:
            self._arguments.append(column)

    @staticmethod
    def _operator(operators: Dict[str, str], operator: Any, kind: str) -> str:
        key = str(operator or "").lower()
        if key not in operators:
            raise AccessProviderError(f"unsupported {kind} operator {operator!r}")
        return operators[key]


def policy_rule_expression(policy_rule: str) -> Tuple[str, List[str]]:
    """
    Render a templated predicate: every `{column}` placeholder becomes a bare
    column name and a policy argument.

    >>> policy_rule_expression("{state} = 'NJ'")
    ("state = 'NJ'", ['state'])
    """
    arguments = POLICY_RULE_ARGUMENT.findall(policy_rule)
    query = POLICY_RULE_ARGUMENT.sub(r"\1", policy_rule)

    return query, arguments


def filter_expression(access_provider: AccessProvider) -> Tuple[str, List[str]]:
    if access_provider.filter_criteria is not None:
        return FilterCriteriaBuilder().build(access_provider.filter_criteria)

    if access_provider.policy_rule is not None:
        return policy_rule_expression(access_provider.policy_rule)

    raise AccessProviderError("no filter criteria or policy rule")
