"""Validates datasets against parsed schema trees, resolving combinators inline.

The result of a validation is a raw result tree:

* ``None`` when the value is valid,
* a message string, or the ``REQUIRED`` sentinel for a missing mandatory field,
* a dict of field results for objects, a list of element results for arrays,
* ``{'VALIDATION': [{'anyOf': [...]}, {'allOf': [...]}, {'oneOf': [...]}]}``
  for nodes that carry combinators.

Invalid data never raises. Use :func:`combinatorize.interpreter.interpret_results`
to reduce the raw tree to per-field messages.
"""

# pylint: disable=line-too-long

import logging
import math
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from combinatorize.common import format_number, json_equal, plural
from combinatorize.constants import (ALL_OF, ANY_OF, DEFAULT_VALIDATION_MESSAGE, ERROR_MARKER, MSG_ENUM,
                                     MSG_EXCLUSIVE_MAXIMUM, MSG_EXCLUSIVE_MINIMUM, MSG_INTEGER, MSG_MAX_ITEMS,
                                     MSG_MAX_LENGTH, MSG_MAXIMUM, MSG_MIN_ITEMS, MSG_MIN_LENGTH, MSG_MINIMUM,
                                     MSG_NUMBER, MSG_PATTERN, MSG_UNIQUE_ITEMS, ONE_OF, REQUIRED, VALIDATION,
                                     is_required)
from combinatorize.dataset import DataSet, ExpressionError, ExpressionEvaluator, evaluate_derived
from combinatorize.schemamodel import Combinator, NodeShape, SchemaKind, SchemaNode

logger = logging.getLogger(__name__)

Path = Tuple[Any, ...]


class Report(Enum):
    """What a validation reports."""
    FAILURES = 'failures'
    PASSES = 'passes'


class Check(NamedTuple):
    """Outcome of one constraint when passes are reported as well."""
    invalid: bool
    message: Any


class SchemaValidator:
    """
    Evaluates schema nodes against a dataset.

    Attributes:
        evaluator: Object with an ``evaluate(dataset_root, expression,
            current_value)`` method used for ``expression`` keywords.
    """

    def __init__(self, evaluator: Optional[Any] = None):
        self.evaluator = evaluator or ExpressionEvaluator()

    def validate_all(self, node: SchemaNode, dataset: Any, report: Report = Report.FAILURES) -> Any:
        """
        Validate a dataset against a schema node.

        Args:
            node: The schema node.
            dataset: The data, or an accessor with a ``get_value(path)`` method.
            report: Report.FAILURES for ordinary validation, Report.PASSES to
                also report constraints that passed.

        Returns:
            The raw result tree, None when the dataset is valid.
        """
        data = dataset if hasattr(dataset, 'get_value') else DataSet(dataset)
        return self._validate_all(node, data, (), report)

    def _validate_all(self, node: SchemaNode, data: Any, path: Path, report: Report) -> Any:
        node = node.resolved()
        if not node.has_combinators:
            return self._validate_single(node, data, path, report)

        results: List[Dict[str, Any]] = []

        alternatives = node.combinators.get(Combinator.ANY_OF)
        if alternatives:
            outcomes = [self._validate_all(alternative, data, path, Report.FAILURES) for alternative in alternatives]
            if all(outcome is not None for outcome in outcomes):
                results.append({ANY_OF: outcomes})

        alternatives = node.combinators.get(Combinator.ALL_OF)
        if alternatives:
            outcomes = [self._validate_all(alternative, data, path, Report.FAILURES) for alternative in alternatives]
            failures = [outcome for outcome in outcomes if outcome is not None]
            if failures:
                results.append({ALL_OF: failures})

        alternatives = node.combinators.get(Combinator.ONE_OF)
        if alternatives:
            failures = self._validate_one_of(alternatives, data, path)
            if failures:
                results.append({ONE_OF: failures})

        return {VALIDATION: results} if results else None

    def _validate_one_of(self, alternatives: List[SchemaNode], data: Any, path: Path) -> List[Any]:
        outcomes = [self._validate_all(alternative, data, path, Report.PASSES) for alternative in alternatives]

        if not all(alternative.resolved().shape is NodeShape.OBJECT for alternative in alternatives):
            checks = [self._outcome_check(outcome) for outcome in outcomes]
            if sum(1 for check in checks if not check.invalid) == 1:
                return []
            return [check.message for check in checks if check.message is not None]

        # object alternatives: exactly one group of required fields may be complete
        required_checks = [self._required_checks(outcome) for outcome in outcomes]
        satisfiable = sum(1 for group in required_checks if not any(check.invalid for check in group.values()))

        failures = []
        for outcome, group in zip(outcomes, required_checks):
            if isinstance(outcome, dict) and VALIDATION not in outcome:
                remaining = {}
                for key, value in outcome.items():
                    if key in group:
                        if satisfiable != 1:
                            remaining[key] = REQUIRED
                    else:
                        remaining[key] = value
            else:
                remaining = outcome
            if remaining:
                failures.append(remaining)
        return failures

    def _required_checks(self, outcome: Any) -> Dict[str, Check]:
        if not isinstance(outcome, dict) or VALIDATION in outcome:
            return {}
        return {key: value for key, value in outcome.items() if isinstance(value, Check) and is_required(value.message)}

    def _outcome_check(self, outcome: Any) -> Check:
        if outcome is None:
            return Check(False, None)
        if isinstance(outcome, Check):
            return outcome
        if isinstance(outcome, dict) and VALIDATION not in outcome:
            failures = {}
            for key, value in outcome.items():
                if isinstance(value, Check):
                    if value.invalid:
                        failures[key] = value.message
                else:
                    failures[key] = value
            return Check(bool(failures), failures or None)
        return Check(True, outcome)

    def _validate_single(self, node: SchemaNode, data: Any, path: Path, report: Report) -> Any:
        if node.shape is NodeShape.OBJECT:
            return self._validate_object(node, data, path, report)
        if node.shape is NodeShape.ARRAY:
            return self._validate_array(node, data, path, report)
        return self._validate_value(node, data, path, report)

    def _validate_object(self, node: SchemaNode, data: Any, path: Path, report: Report) -> Any:
        value = data.get_value(path)
        container = value if isinstance(value, dict) else {}
        result: Dict[str, Any] = {}

        for name in node.required or []:
            missing = self._is_missing(container.get(name))
            if report is Report.PASSES:
                result[name] = Check(missing, REQUIRED)
            elif missing:
                result[name] = REQUIRED

        for key, child in node.properties.items():
            outcome = self._validate_all(child, data, path + (key,), Report.FAILURES)
            if outcome is None:
                continue
            current = result.get(key)
            if current is None or (isinstance(current, Check) and not current.invalid):
                result[key] = outcome

        return result or None

    def _validate_array(self, node: SchemaNode, data: Any, path: Path, report: Report) -> Any:
        value = data.get_value(path)
        items = value if isinstance(value, list) else []
        check = self._first(self._array_checks(node, items))
        if check is not None and check.invalid:
            return self._report(node, check, report)

        results = [self._validate_all(node.items, data, path + (i,), Report.FAILURES) for i in range(len(items))]
        if any(result is not None for result in results):
            return results
        return self._report(node, check, report)

    def _validate_value(self, node: SchemaNode, data: Any, path: Path, report: Report) -> Any:
        value = data.get_value(path)

        if node.kind is SchemaKind.EXPRESSION:
            derived = evaluate_derived(node.expression, data.get_value(()), value, self.evaluator)
            invalid = derived == ERROR_MARKER
            if report is Report.PASSES:
                return Check(invalid, ERROR_MARKER if invalid else None)
            return ERROR_MARKER if invalid else None

        parsed = node.parse_value(value)
        if node.expression and not self._evaluate(node, data, parsed):
            message = node.validation_message or DEFAULT_VALIDATION_MESSAGE
            return Check(True, message) if report is Report.PASSES else message

        return self._report(node, self._first(self._value_checks(node, parsed)), report)

    def _evaluate(self, node: SchemaNode, data: Any, value: Any) -> Any:
        try:
            return self.evaluator.evaluate(data.get_value(()), node.expression, value)
        except ExpressionError as e:
            logger.warning("Expression at %s failed: %s", node.location, e)
            return False

    def _report(self, node: SchemaNode, check: Optional[Check], report: Report) -> Any:
        if check is None:
            return None
        message = node.validation_message or check.message
        if report is Report.FAILURES:
            return message if check.invalid else None
        return Check(check.invalid, message)

    def _first(self, checks: List[Check]) -> Optional[Check]:
        """ The first failing check, or the first check when all pass. """
        for check in checks:
            if check.invalid:
                return check
        return checks[0] if checks else None

    def _is_missing(self, value: Any) -> bool:
        return value is None or value == ''

    def _value_checks(self, node: SchemaNode, value: Any) -> List[Check]:
        if value is None or value == '':
            return []
        checks: List[Check] = []
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)

        if node.kind is SchemaKind.INTEGER:
            if not isinstance(value, int) or isinstance(value, bool):
                return [Check(True, MSG_INTEGER)]
            checks.extend(self._number_checks(node, value))
        elif node.kind is SchemaKind.NUMBER:
            if not is_number or math.isnan(value):
                return [Check(True, MSG_NUMBER)]
            checks.extend(self._number_checks(node, value))
        elif node.kind is SchemaKind.STRING:
            checks.extend(self._string_checks(node, str(value)))
        elif node.kind is None:
            if is_number:
                checks.extend(self._number_checks(node, value))
            elif isinstance(value, str):
                checks.extend(self._string_checks(node, value))

        if node.enum is not None:
            values = [entry['value'] if isinstance(entry, dict) and 'value' in entry else entry for entry in node.enum]
            checks.append(Check(not any(value == allowed for allowed in values),
                                MSG_ENUM.format(values=', '.join(str(allowed) for allowed in values))))
        return checks

    def _number_checks(self, node: SchemaNode, value: Any) -> List[Check]:
        checks = []
        if node.minimum is not None:
            checks.append(Check(value < node.minimum, MSG_MINIMUM.format(limit=format_number(node.minimum))))
        if node.maximum is not None:
            checks.append(Check(value > node.maximum, MSG_MAXIMUM.format(limit=format_number(node.maximum))))
        if node.exclusive_minimum is not None:
            checks.append(Check(value <= node.exclusive_minimum, MSG_EXCLUSIVE_MINIMUM.format(limit=format_number(node.exclusive_minimum))))
        if node.exclusive_maximum is not None:
            checks.append(Check(value >= node.exclusive_maximum, MSG_EXCLUSIVE_MAXIMUM.format(limit=format_number(node.exclusive_maximum))))
        return checks

    def _string_checks(self, node: SchemaNode, value: str) -> List[Check]:
        checks = []
        if node.pattern is not None:
            checks.append(Check(node.pattern.search(value) is None, MSG_PATTERN))
        if node.min_length is not None:
            checks.append(Check(len(value) < node.min_length,
                                MSG_MIN_LENGTH.format(limit=node.min_length, noun=plural('character', node.min_length))))
        if node.max_length is not None:
            checks.append(Check(len(value) > node.max_length,
                                MSG_MAX_LENGTH.format(limit=node.max_length, noun=plural('character', node.max_length))))
        return checks

    def _array_checks(self, node: SchemaNode, items: List[Any]) -> List[Check]:
        checks = []
        if node.min_items is not None:
            checks.append(Check(len(items) < node.min_items,
                                MSG_MIN_ITEMS.format(limit=node.min_items, noun=plural('item', node.min_items))))
        if node.max_items is not None:
            checks.append(Check(len(items) > node.max_items,
                                MSG_MAX_ITEMS.format(limit=node.max_items, noun=plural('item', node.max_items))))
        if node.unique_items and len(items) > 1:
            repeated = [i + 1 for i, item in enumerate(items)
                        if any(j != i and json_equal(other, item) for j, other in enumerate(items))]
            checks.append(Check(bool(repeated), MSG_UNIQUE_ITEMS.format(items=', '.join(str(i) for i in repeated))))
        return checks


def validate_all(node: SchemaNode, dataset: Any, report: Report = Report.FAILURES, evaluator: Optional[Any] = None) -> Any:
    """
    Validate a dataset against a parsed schema.

    Args:
        node: The parsed schema.
        dataset: The data or a dataset accessor.
        report: Report.FAILURES (default) or Report.PASSES.
        evaluator: Optional expression evaluator.

    Returns:
        The raw result tree, None when the dataset is valid.
    """
    return SchemaValidator(evaluator).validate_all(node, dataset, report)
