"""
Common utility functions for combinatorize.
"""

# pylint: disable=line-too-long

import copy
from typing import Any, Dict, List, Tuple, Union

from combinatorize.constants import COMBINATOR_KEYWORDS


def merge_schemas(schema1: Dict[str, Any], schema2: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two schema definitions into a new definition.

    Nested dicts (such as ``properties``) are merged recursively, the
    ``required`` lists are joined as an ordered union and every other key
    takes the value of ``schema2`` (last write wins). Neither input is
    modified.

    Args:
        schema1 (Dict[str, Any]): The base definition.
        schema2 (Dict[str, Any]): The definition layered on top.

    Returns:
        Dict[str, Any]: The merged definition.
    """
    merged = copy.deepcopy(schema1)
    for key, value in schema2.items():
        current = merged.get(key)
        if key == 'required' and isinstance(current, list) and isinstance(value, list):
            merged[key] = current + [name for name in value if name not in current]
        elif isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_schemas(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def has_composition_keywords(json_object: Any) -> bool:
    """Check if the JSON object has any of the combining keywords: allOf, oneOf, anyOf."""
    return isinstance(json_object, dict) and any(keyword in json_object for keyword in COMBINATOR_KEYWORDS)


def strip_composition_keywords(json_object: Dict[str, Any]) -> Dict[str, Any]:
    """ Shallow copy of a definition without its allOf, anyOf and oneOf arrays. """
    return {key: value for key, value in json_object.items() if key not in COMBINATOR_KEYWORDS}


def json_equal(value1: Any, value2: Any) -> bool:
    """
    Check if two JSON values are structurally equal.

    Arrays are equal when their elements are equal in order, objects when
    they have the same keys with equal values. Booleans never equal numbers.

    Args:
        value1 (Any): The first value.
        value2 (Any): The second value.

    Returns:
        bool: True if the values are equal, False otherwise.
    """
    if isinstance(value1, dict) and isinstance(value2, dict):
        if value1.keys() != value2.keys():
            return False
        return all(json_equal(value, value2[key]) for key, value in value1.items())
    if isinstance(value1, list) and isinstance(value2, list):
        if len(value1) != len(value2):
            return False
        return all(json_equal(item1, item2) for item1, item2 in zip(value1, value2))
    if isinstance(value1, bool) or isinstance(value2, bool):
        return isinstance(value1, bool) and isinstance(value2, bool) and value1 == value2
    if isinstance(value1, (int, float)) and isinstance(value2, (int, float)):
        return value1 == value2
    return type(value1) is type(value2) and value1 == value2


def plural(noun: str, count: Union[int, float]) -> str:
    """ Pluralize a noun for a message: 1 item, 2 items. """
    return noun if count == 1 else noun + 's'


def format_number(value: Union[int, float]) -> str:
    """ Render a numeric limit the way it reads in a message (10.0 -> 10). """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def split_path(path: Union[str, int, Tuple, List, None]) -> Tuple[str, ...]:
    """
    Split a dotted field path into its parts.

    Args:
        path (Union[str, int, Tuple, List, None]): A dotted path such as
            ``'accounts.0.number'``, or an already split sequence.

    Returns:
        Tuple[str, ...]: The path parts as strings.
    """
    if path is None or path == '':
        return ()
    if isinstance(path, (tuple, list)):
        return tuple(str(part) for part in path)
    return tuple(str(path).split('.'))


def join_path(parts: Union[Tuple, List]) -> str:
    """ Join path parts into a dotted path. """
    return '.'.join(str(part) for part in parts)
