"""Validates JSON instances against combinator schemas.

Two strategies are available and agree on schemas without combinators:

* ``inline``: parse the schema once and resolve anyOf / allOf / oneOf while
  walking the data, then interpret the raw result.
* ``explode``: expand the schema into combinator-free variants, validate the
  data against each variant and merge the per-field messages. The data is
  valid as soon as one variant accepts it. oneOf cannot be expanded, so
  schemas using it have to be validated inline.
"""

# pylint: disable=line-too-long

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from combinatorize.common import split_path
from combinatorize.constants import ANY_OF
from combinatorize.exploder import explode
from combinatorize.interpreter import flatten_messages, interpret_results
from combinatorize.schemamodel import SchemaNode, parse
from combinatorize.validator import SchemaValidator

logger = logging.getLogger(__name__)

STRATEGY_INLINE = 'inline'
STRATEGY_EXPLODE = 'explode'
STRATEGIES = (STRATEGY_INLINE, STRATEGY_EXPLODE)


class ValidationResult:
    """Result of validating a JSON instance against a schema."""

    def __init__(self, is_valid: bool, errors: List[str] = None, instance_path: str = None, messages: Dict[str, Any] = None):
        self.is_valid = is_valid
        self.errors = errors or []
        self.instance_path = instance_path
        self.messages = messages or {}

    def __str__(self) -> str:
        if self.is_valid:
            return "✓ Valid" + (f": {self.instance_path}" if self.instance_path else "")
        prefix = f"{self.instance_path}: " if self.instance_path else ""
        return f"✗ Invalid: {prefix}" + "; ".join(self.errors)

    def __repr__(self) -> str:
        return f"ValidationResult(is_valid={self.is_valid}, errors={self.errors})"


def validate_schema(definition: Dict[str, Any], data: Any, definitions: Optional[Dict[str, Any]] = None, evaluator: Optional[Any] = None) -> Any:
    """
    Validate data inline against a schema definition.

    Returns:
        The interpreted result tree, None when the data is valid.
    """
    node = parse(definition, definitions)
    return interpret_results(SchemaValidator(evaluator).validate_all(node, data))


def validate_exploded(definition: Dict[str, Any], data: Any, max_variants: Optional[int] = None,
                      definitions: Optional[Dict[str, Any]] = None, evaluator: Optional[Any] = None) -> Optional[Dict[str, Any]]:
    """
    Validate data against every variant of an exploded schema definition.

    Args:
        definition: The schema definition (must not use oneOf).
        data: The data to validate.
        max_variants: Optional bound on the number of variants.
        definitions: Additional named definitions for '$ref' resolution.
        evaluator: Optional expression evaluator.

    Returns:
        Flat map of field path to message, None when some variant accepts
        the data. Fields that fail differently in different variants map to
        ``{'anyOf': [messages]}``.
    """
    exploded = explode(definition, max_variants, definitions)
    validator = SchemaValidator(evaluator)

    if not exploded.did_explode:
        return flatten_messages(interpret_results(validator.validate_all(exploded.variants[0], data))) or None

    per_variant = []
    for i, variant in enumerate(exploded.variants):
        interpreted = interpret_results(validator.validate_all(variant, data))
        if interpreted is None:
            logger.debug("Variant %d of %d accepts the data", i + 1, len(exploded.variants))
            return None
        per_variant.append(flatten_messages(interpreted))

    aggregated: Dict[str, List[Any]] = {}
    for messages in per_variant:
        for path, message in messages.items():
            distinct = aggregated.setdefault(path, [])
            if message not in distinct:
                distinct.append(message)
    return {path: messages[0] if len(messages) == 1 else {ANY_OF: messages} for path, messages in aggregated.items()}


def validate_field(node: SchemaNode, dataset: Any, path=None, evaluator: Optional[Any] = None) -> Any:
    """
    Validate a dataset and return the interpreted result of one field.

    Args:
        node: The parsed schema of the whole dataset.
        dataset: The data or a dataset accessor.
        path: Dotted path of the field ('accounts.0.number').
        evaluator: Optional expression evaluator.

    Returns:
        The message(s) for the field, None when it is valid.
    """
    result = interpret_results(SchemaValidator(evaluator).validate_all(node, dataset))
    for part in split_path(path):
        if isinstance(result, dict):
            result = result.get(part)
        elif isinstance(result, list) and part.isdigit() and int(part) < len(result):
            result = result[int(part)]
        else:
            return None
    return result


def _describe(message: Any) -> str:
    if isinstance(message, dict):
        return ' | '.join(f"{kind}: {', '.join(str(m) for m in messages)}" for kind, messages in message.items())
    return str(message)


def validate_instance(
    instance: Any,
    schema: Dict[str, Any],
    strategy: str = STRATEGY_INLINE,
    definitions: Optional[Dict[str, Any]] = None
) -> ValidationResult:
    """Validates a JSON instance against a schema.

    Args:
        instance: The JSON value to validate
        schema: The schema definition
        strategy: 'inline' (default) or 'explode'
        definitions: Additional named definitions for '$ref' resolution

    Returns:
        ValidationResult with validation status and any errors

    Raises:
        SchemaDefinitionError: If the schema is malformed
    """
    if strategy == STRATEGY_INLINE:
        messages = flatten_messages(validate_schema(schema, instance, definitions))
    elif strategy == STRATEGY_EXPLODE:
        messages = validate_exploded(schema, instance, definitions=definitions) or {}
    else:
        raise ValueError(f"Unknown validation strategy '{strategy}', expected one of {', '.join(STRATEGIES)}")

    errors = [f"{path or '#'}: {_describe(message)}" for path, message in messages.items()]
    return ValidationResult(is_valid=not messages, errors=errors, messages=messages)


def _load_instances(instance_file: str, content: str, schema_is_array: bool) -> List[Tuple[Any, str]]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        # JSON Lines
        instances = []
        for i, line in enumerate(content.split('\n')):
            line = line.strip()
            if line:
                instances.append((json.loads(line), f"{instance_file}:{i+1}"))
        return instances

    if isinstance(data, list) and not schema_is_array:
        return [(item, f"{instance_file}[{i}]") for i, item in enumerate(data)]
    return [(data, instance_file)]


def validate_file(
    instance_file: str,
    schema_file: str,
    strategy: str = STRATEGY_INLINE
) -> List[ValidationResult]:
    """Validates JSON instance file(s) against a schema file.

    Args:
        instance_file: Path to JSON file (single object, array, or JSONL)
        schema_file: Path to the schema definition
        strategy: 'inline' (default) or 'explode'

    Returns:
        List of ValidationResult for each instance in the file

    Raises:
        json.JSONDecodeError: If a line of a JSON Lines file is not valid JSON
    """
    with open(schema_file, 'r', encoding='utf-8') as f:
        schema = json.load(f)

    with open(instance_file, 'r', encoding='utf-8') as f:
        content = f.read().strip()

    schema_is_array = isinstance(schema, dict) and schema.get('type') == 'array'

    results = []
    for instance, path in _load_instances(instance_file, content, schema_is_array):
        result = validate_instance(instance, schema, strategy)
        result.instance_path = path
        results.append(result)

    logger.debug("Validated %d instance(s) from %s", len(results), instance_file)
    return results


def validate_json_instances(
    input_files: List[str],
    schema_file: str,
    strategy: str = STRATEGY_INLINE
) -> Tuple[int, int]:
    """Validates multiple JSON instance files against a schema.

    Args:
        input_files: List of JSON file paths to validate
        schema_file: Path to schema file
        strategy: 'inline' (default) or 'explode'

    Returns:
        Tuple of (valid_count, invalid_count)
    """
    valid_count = 0
    invalid_count = 0

    for input_file in input_files:
        for result in validate_file(input_file, schema_file, strategy):
            if result.is_valid:
                valid_count += 1
            else:
                invalid_count += 1
                logger.info("%s", result)

    return valid_count, invalid_count
