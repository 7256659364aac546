"""Reduces raw validation result trees to per-field messages."""

# pylint: disable=line-too-long

from typing import Any, Dict, List, Tuple

from combinatorize.common import join_path
from combinatorize.constants import COMBINATOR_KEYWORDS, VALIDATION
from combinatorize.validator import Check


def interpret_results(results: Any) -> Any:
    """
    Interpret a raw result tree produced by the validator.

    Combinator wrappers are turned into per-field buckets keyed by the
    combinator, e.g. ``{'VALIDATION': [{'anyOf': [{'first': 'REQUIRED'},
    {'second': 'REQUIRED'}]}]}`` becomes ``{'first': {'anyOf': ['REQUIRED']},
    'second': {'anyOf': ['REQUIRED']}}``. Combinators whose alternatives are
    all plain messages keep the message list under the combinator key.
    Interpreting an interpreted tree returns an equal tree.

    Args:
        results: The raw result tree.

    Returns:
        The interpreted tree, None when there is nothing to report.
    """
    if results is None or isinstance(results, str):
        return results
    if isinstance(results, Check):
        return results.message if results.invalid else None
    if isinstance(results, list):
        interpreted = [interpret_results(result) for result in results]
        return interpreted if any(result is not None for result in interpreted) else None
    if isinstance(results, dict):
        if VALIDATION in results:
            return _interpret_parts(results[VALIDATION]) or None
        interpreted = {}
        for key, value in results.items():
            value = interpret_results(value)
            if value is not None:
                interpreted[key] = value
        return interpreted or None
    return results


def _interpret_parts(parts: List[Dict[str, List[Any]]]) -> Dict[str, Any]:
    interpreted: Dict[str, Any] = {}
    for part in parts:
        for kind, alternatives in part.items():
            if all(isinstance(alternative, str) for alternative in alternatives):
                _extend(interpreted.setdefault(kind, []), alternatives)
                continue
            for alternative in alternatives:
                alternative = _settle(alternative)
                if alternative is None:
                    continue
                if isinstance(alternative, str):
                    _extend(interpreted.setdefault(kind, []), [alternative])
                elif isinstance(alternative, dict) and VALIDATION in alternative:
                    _merge(interpreted, _interpret_parts(alternative[VALIDATION]))
                elif isinstance(alternative, dict):
                    for field, value in alternative.items():
                        value = _settle(value)
                        if isinstance(value, str):
                            bucket = interpreted.setdefault(field, {})
                            if isinstance(bucket, dict):
                                _extend(bucket.setdefault(kind, []), [value])
                            elif isinstance(bucket, list):
                                _extend(bucket, [value])
                        elif value is not None:
                            value = interpret_results(value)
                            if value is not None:
                                _merge(interpreted, {field: value})
                else:
                    value = interpret_results(alternative)
                    if value is not None:
                        interpreted.setdefault(kind, []).append(value)
    return interpreted


def _settle(value: Any) -> Any:
    if isinstance(value, Check):
        return value.message if value.invalid else None
    return value


def _extend(target: List[Any], messages: List[Any]) -> None:
    for message in messages:
        if message not in target:
            target.append(message)


def _merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        current = target.get(key)
        if current is None:
            target[key] = value
        elif isinstance(current, dict) and isinstance(value, dict):
            _merge(current, value)
        elif isinstance(current, list):
            _extend(current, value if isinstance(value, list) else [value])
        elif isinstance(value, list) and isinstance(current, dict) and _is_bucket(current):
            # element results keep their indices, bucket messages follow them
            merged = list(value)
            for messages in current.values():
                _extend(merged, messages)
            target[key] = merged


def _is_bucket(value: Dict[str, Any]) -> bool:
    return bool(value) and all(key in COMBINATOR_KEYWORDS and isinstance(messages, list) for key, messages in value.items())


def flatten_messages(interpreted: Any, prefix: Tuple[Any, ...] = ()) -> Dict[str, Any]:
    """
    Flatten an interpreted tree into a map of dotted field paths.

    Messages and combinator buckets (``{'anyOf': [...]}``) are leaves.
    Array elements are addressed by their index.

    Args:
        interpreted: An interpreted result tree.
        prefix: Path parts prepended to every key.

    Returns:
        Dict[str, Any]: Field path to message or bucket. A message reported
        for the dataset itself is keyed by the empty path.
    """
    messages: Dict[str, Any] = {}
    if interpreted is None:
        return messages
    if isinstance(interpreted, str) or (isinstance(interpreted, dict) and _is_bucket(interpreted)):
        messages[join_path(prefix)] = interpreted
    elif isinstance(interpreted, dict):
        for key, value in interpreted.items():
            messages.update(flatten_messages(value, prefix + (key,)))
    elif isinstance(interpreted, list):
        for index, value in enumerate(interpreted):
            messages.update(flatten_messages(value, prefix + (index,)))
    return messages
