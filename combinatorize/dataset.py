"""Dataset access and expression evaluation used by the validator.

The validator never indexes into the raw data itself. It reads values by
path through :class:`DataSet` and evaluates ``expression`` keywords through
an :class:`ExpressionEvaluator`. Both can be replaced by callers that keep
their data in another representation or evaluate expressions differently.
"""

import logging
import math
from typing import Any, Callable, Dict, Optional

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment
from jsonpointer import JsonPointer, JsonPointerException

from combinatorize.common import split_path
from combinatorize.constants import ERROR_MARKER

logger = logging.getLogger(__name__)


class ExpressionError(Exception):
    """Exception raised when an expression cannot be compiled or evaluated."""

    def __init__(self, message: str, expression: str):
        self.message = message
        self.expression = expression
        super().__init__(f"{message} in expression '{expression}'")


class DataSet:
    """Read access to a JSON-like dataset by dotted path."""

    def __init__(self, data: Any):
        self.data = data

    def get_value(self, path=None, default: Any = None) -> Any:
        """
        Fetch a nested value.

        Args:
            path: A dotted path ('accounts.0.number') or a sequence of parts.
                An empty path returns the whole dataset.
            default: Returned when the path does not exist.

        Returns:
            Any: The value at the path or the default.
        """
        parts = split_path(path)
        if not parts:
            return self.data
        try:
            return JsonPointer.from_parts(list(parts)).resolve(self.data, default)
        except JsonPointerException:
            return default


class ExpressionEvaluator:
    """
    Evaluates expressions in a jinja2 sandbox.

    The expression sees the top-level keys of the dataset as variables,
    ``this`` and ``value`` for the value being validated and ``root`` for
    the whole dataset, e.g. ``this % 2 == 0`` or ``value > age + 18``.
    """

    def __init__(self) -> None:
        self.environment = SandboxedEnvironment()
        self._compiled: Dict[str, Callable[..., Any]] = {}

    def compile(self, expression: str) -> Callable[..., Any]:
        """ Compile an expression once and cache it. """
        compiled = self._compiled.get(expression)
        if compiled is None:
            try:
                compiled = self.environment.compile_expression(expression, undefined_to_none=True)
            except TemplateError as e:
                raise ExpressionError(str(e), expression) from e
            self._compiled[expression] = compiled
        return compiled

    def evaluate(self, dataset_root: Any, expression: str, current_value: Any) -> Any:
        """
        Evaluate an expression against a dataset.

        Args:
            dataset_root: The complete dataset.
            expression: The expression text.
            current_value: The value of the field the expression belongs to.

        Returns:
            Any: The result of the expression.

        Raises:
            ExpressionError: If the expression is malformed or fails.
        """
        compiled = self.compile(expression)
        variables = dict(dataset_root) if isinstance(dataset_root, dict) else {}
        variables['this'] = current_value
        variables['value'] = current_value
        variables['root'] = dataset_root
        try:
            return compiled(**variables)
        except (TemplateError, TypeError, ValueError, ArithmeticError, AttributeError) as e:
            raise ExpressionError(str(e), expression) from e


def evaluate_derived(expression: str, dataset_root: Any, current_value: Any = None,
                     evaluator: Optional[ExpressionEvaluator] = None) -> Any:
    """
    Compute the value of a derived (expression) field.

    Returns the numeric result, or the '#ERROR#' marker when the expression
    fails or does not produce a number.
    """
    evaluator = evaluator or ExpressionEvaluator()
    try:
        result = evaluator.evaluate(dataset_root, expression, current_value)
    except ExpressionError as e:
        logger.warning("Derived value could not be computed: %s", e)
        return ERROR_MARKER
    if isinstance(result, bool) or not isinstance(result, (int, float)):
        return ERROR_MARKER
    if math.isnan(result):
        return ERROR_MARKER
    return result
