"""Parses schema definitions into an immutable tree of typed schema nodes.

A definition is a JSON-Schema-like dict. Parsing copies the constraint
keywords onto :class:`SchemaNode` objects, compiles patterns, resolves the
``$ref`` table and builds the ``anyOf`` / ``allOf`` / ``oneOf`` alternatives.
Each alternative inherits the fields of the node that owns it.

All nodes of a parse live in one :class:`SchemaArena`. Nodes refer to their
parent by arena index, and references (``$ref``) are entries of the arena's
reference table, so the owned tree never contains a cycle.
"""

# pylint: disable=too-many-instance-attributes, too-many-branches, line-too-long

import copy
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from jsonpointer import JsonPointerException, resolve_pointer

from combinatorize.common import has_composition_keywords, join_path, merge_schemas, split_path, strip_composition_keywords
from combinatorize.constants import CONSTRAINT_KEYS

logger = logging.getLogger(__name__)


class SchemaKind(Enum):
    """Primitive type tag of a schema node."""
    OBJECT = 'object'
    ARRAY = 'array'
    STRING = 'string'
    INTEGER = 'integer'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    EXPRESSION = 'expression'


class NodeShape(Enum):
    """How the validator walks a node."""
    OBJECT = 'object'
    ARRAY = 'array'
    SCALAR = 'scalar'


class Combinator(Enum):
    """Logical composition keywords, in evaluation order."""
    ANY_OF = 'anyOf'
    ALL_OF = 'allOf'
    ONE_OF = 'oneOf'


class SchemaDefinitionError(Exception):
    """Exception raised when a schema definition is structurally invalid."""

    def __init__(self, message: str, path: str = "#"):
        self.message = message
        self.path = path
        super().__init__(f"{message} at {path}")


class UnresolvedReferenceError(SchemaDefinitionError):
    """Exception raised when a $ref cannot be resolved."""


# definition keyword -> SchemaNode attribute
_ATTRIBUTE_NAMES = {
    'readOnly': 'read_only',
    'required': 'required',
    'default': 'default',
    'minimum': 'minimum',
    'maximum': 'maximum',
    'exclusiveMinimum': 'exclusive_minimum',
    'exclusiveMaximum': 'exclusive_maximum',
    'minLength': 'min_length',
    'maxLength': 'max_length',
    'uniqueItems': 'unique_items',
    'minItems': 'min_items',
    'maxItems': 'max_items',
    'expression': 'expression',
    'validationMessage': 'validation_message',
    'enum': 'enum',
    'format': 'format',
}

_NUMERIC_KEYS = ('minimum', 'maximum', 'exclusiveMinimum', 'exclusiveMaximum')
_STRING_KEYS = ('minLength', 'maxLength', 'pattern')


class SchemaNode:
    """
    One addressable location of a parsed schema.

    Attributes:
        arena: The arena owning this node.
        index: Position of this node in the arena.
        parent_index: Arena index of the parent node, None for roots.
        role: 'root', 'property', 'items', 'alternative' or 'reference'.
        key: Property name under the parent (alternatives and items keep the
            key of the node that owns them).
        kind: The SchemaKind, None for untyped nodes.
        properties: Ordered child nodes of object nodes.
        items: Element schema of array nodes.
        combinators: Alternatives per Combinator.
        ref: The $ref of a reference node.
        definition: The (merged) definition this node was built from.
    """

    def __init__(self, arena: 'SchemaArena', key: Optional[str], parent_index: Optional[int], role: str, definition: Dict[str, Any]):
        self.arena = arena
        self.key = key
        self.parent_index = parent_index
        self.role = role
        self.definition = definition
        self.kind: Optional[SchemaKind] = None
        self.properties: Optional[Dict[str, 'SchemaNode']] = None
        self.items: Optional['SchemaNode'] = None
        self.combinators: Dict[Combinator, List['SchemaNode']] = {}
        self.ref: Optional[str] = None
        self.pattern: Optional[re.Pattern] = None
        for attribute in _ATTRIBUTE_NAMES.values():
            setattr(self, attribute, None)
        self.index = arena.add(self)

    def __repr__(self) -> str:
        kind = self.kind.value if self.kind else self.ref or 'any'
        return f"SchemaNode({kind} at {self.location})"

    @property
    def shape(self) -> NodeShape:
        """ The walk shape of the node. """
        if self.kind is SchemaKind.OBJECT:
            return NodeShape.OBJECT
        if self.kind is SchemaKind.ARRAY:
            return NodeShape.ARRAY
        return NodeShape.SCALAR

    @property
    def parent(self) -> Optional['SchemaNode']:
        """ The parent node, looked up through the arena. """
        if self.parent_index is None:
            return None
        return self.arena.nodes[self.parent_index]

    @property
    def path(self) -> Tuple[str, ...]:
        """ Field path from the parse root to this node ('*' marks array items). """
        parts: List[str] = []
        node: Optional[SchemaNode] = self
        while node is not None:
            if node.role == 'property':
                parts.append(node.key)
            elif node.role == 'items':
                parts.append('*')
            node = node.parent
        return tuple(reversed(parts))

    @property
    def location(self) -> str:
        """ Human readable location for messages. """
        return '#/' + join_path(self.path) if self.path else '#'

    @property
    def has_combinators(self) -> bool:
        """ True if any anyOf, allOf or oneOf is attached. """
        return bool(self.combinators)

    def resolved(self) -> 'SchemaNode':
        """ Follow $ref links to the node that carries the actual schema. """
        node = self
        seen = set()
        while node.ref is not None:
            if node.index in seen:
                raise UnresolvedReferenceError(f"Reference loop on {node.ref}", node.location)
            seen.add(node.index)
            node = self.arena.resolve(node.ref)
        return node

    def get_schema(self, path=None) -> 'SchemaNode':
        """
        Look up a descendant by dotted path.

        Args:
            path: A dotted path ('address.street'), a sequence of parts or None
                for this node. Array items are addressed with an index or '*'.

        Returns:
            SchemaNode: The node at the path.

        Raises:
            KeyError: If a part of the path does not exist.
        """
        node = self
        for part in split_path(path):
            node = node.resolved()
            if node.shape is NodeShape.ARRAY and (part == '*' or part.isdigit()):
                node = node.items
                continue
            if not node.properties or part not in node.properties:
                known = ','.join(node.properties or [])
                raise KeyError(f"Could not find key '{part}' for key '{join_path(split_path(path))}' in schema with properties [{known}]")
            node = node.properties[part]
        return node

    def default_value(self) -> Any:
        """ Build the default dataset described by this schema. """
        if self.ref is not None:
            return None
        if self.default is not None:
            return copy.deepcopy(self.default)
        if self.shape is NodeShape.ARRAY:
            return [self.items.default_value() for _ in range(self.min_items or 0)]
        if self.shape is NodeShape.OBJECT:
            value = {}
            for key, child in self.properties.items():
                if child.kind is SchemaKind.EXPRESSION:
                    continue
                value[key] = child.default_value()
            return value
        return None

    def parse_value(self, value: Any) -> Any:
        """
        Coerce raw input (usually text from a form) to the node's type.

        Input that cannot be converted is returned unchanged so that the
        type check of the validator can report it.
        """
        if value is None or value == '':
            return value
        if self.kind is SchemaKind.INTEGER:
            if isinstance(value, bool):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, str):
                try:
                    return int(value.strip())
                except ValueError:
                    return value
            return value
        if self.kind is SchemaKind.NUMBER:
            if isinstance(value, str):
                try:
                    return float(value.strip())
                except ValueError:
                    return value
            return value
        if self.kind is SchemaKind.BOOLEAN:
            return value is True or value in ('true', 'True')
        return value


class SchemaArena:
    """
    Owns every node of one parse and the table of resolved references.

    The arena is completely filled by :func:`parse` and only read afterwards,
    so a parsed schema can be shared by any number of validations.
    """

    def __init__(self, definition: Dict[str, Any]):
        self.definition = definition
        self.nodes: List[SchemaNode] = []
        self.references: Dict[str, Optional[int]] = {}

    @property
    def root(self) -> SchemaNode:
        """ The node built from the top-level definition. """
        return self.nodes[0]

    def add(self, node: SchemaNode) -> int:
        """ Register a node and return its index. """
        self.nodes.append(node)
        return len(self.nodes) - 1

    def resolve(self, ref: str) -> SchemaNode:
        """ Look up the target node of a $ref. """
        index = self.references.get(ref)
        if index is None:
            raise UnresolvedReferenceError(f"Could not find definition in your schema: {ref}")
        return self.nodes[index]


class _SchemaBuilder:
    """ Builds the nodes of one arena. """

    def __init__(self, arena: SchemaArena):
        self.arena = arena

    def build(self, definition: Any, key: Optional[str], parent_index: Optional[int], role: str, location: str) -> SchemaNode:
        if not isinstance(definition, dict):
            raise SchemaDefinitionError(f"Schema must be an object, got {type(definition).__name__}", location)

        node = SchemaNode(self.arena, key, parent_index, role, definition)

        if '$ref' in definition:
            node.ref = definition['$ref']
            self.register_reference(node.ref, location)
            return node

        node.kind = self.detect_kind(definition, location)

        for keyword in CONSTRAINT_KEYS:
            if definition.get(keyword) is not None:
                setattr(node, _ATTRIBUTE_NAMES[keyword], definition[keyword])
        if node.required is not None and not isinstance(node.required, list):
            raise SchemaDefinitionError("'required' must be a list of property names", location)

        if definition.get('pattern'):
            try:
                node.pattern = re.compile(definition['pattern'])
            except re.error as e:
                raise SchemaDefinitionError(f"Invalid pattern '{definition['pattern']}': {e}", location) from e

        if node.kind is SchemaKind.OBJECT:
            properties = definition.get('properties', {})
            if not isinstance(properties, dict):
                raise SchemaDefinitionError("'properties' must be an object", location)
            node.properties = {}
            for name, child in properties.items():
                node.properties[name] = self.build(child, name, node.index, 'property', f"{location}/properties/{name}")

        if node.kind is SchemaKind.ARRAY:
            items = definition.get('items')
            if not isinstance(items, dict):
                raise SchemaDefinitionError("Array schema must define a single 'items' schema", location)
            node.items = self.build(items, key, node.index, 'items', f"{location}/items")

        if has_composition_keywords(definition):
            rest = strip_composition_keywords(definition)
            for combinator in Combinator:
                alternatives = definition.get(combinator.value)
                if alternatives is None:
                    continue
                if not isinstance(alternatives, list) or not alternatives:
                    raise SchemaDefinitionError(f"'{combinator.value}' must be a non-empty list of schemas", location)
                node.combinators[combinator] = [
                    self.build(self.merge_alternative(rest, alternative, f"{location}/{combinator.value}/{i}"),
                               key, node.index, 'alternative', f"{location}/{combinator.value}/{i}")
                    for i, alternative in enumerate(alternatives)
                ]
        return node

    def merge_alternative(self, rest: Dict[str, Any], alternative: Any, location: str) -> Dict[str, Any]:
        if not isinstance(alternative, dict):
            raise SchemaDefinitionError("Combinator alternatives must be objects", location)
        return merge_schemas(rest, alternative)

    def detect_kind(self, definition: Dict[str, Any], location: str) -> Optional[SchemaKind]:
        schema_type = definition.get('type')
        if schema_type is not None:
            try:
                kind = SchemaKind(schema_type)
            except ValueError as e:
                raise SchemaDefinitionError(f"Schema type not supported: {schema_type}", location) from e
            if kind is SchemaKind.OBJECT and 'properties' not in definition:
                raise SchemaDefinitionError("Schema does not contain any properties", location)
            if kind is SchemaKind.ARRAY and 'items' not in definition:
                raise SchemaDefinitionError("Array schema does not define its items", location)
            return kind
        if 'properties' in definition or 'required' in definition:
            return SchemaKind.OBJECT
        if 'items' in definition:
            return SchemaKind.ARRAY
        if 'expression' in definition:
            return SchemaKind.EXPRESSION
        if any(key in definition for key in _NUMERIC_KEYS):
            return SchemaKind.NUMBER
        if any(key in definition for key in _STRING_KEYS):
            return SchemaKind.STRING
        return None

    def register_reference(self, ref: Any, location: str) -> None:
        if not isinstance(ref, str):
            raise UnresolvedReferenceError("'$ref' must be a string", location)
        if ref in self.arena.references:
            return
        if ref == '#':
            self.arena.references[ref] = 0
            return
        if not ref.startswith('#/'):
            raise UnresolvedReferenceError(f"Only local references are supported: {ref}", location)
        try:
            target = resolve_pointer(self.arena.definition, ref[1:])
        except JsonPointerException as e:
            raise UnresolvedReferenceError(f"Could not find definition in your schema: {ref}", location) from e

        # reserve the slot first so that self references terminate
        self.arena.references[ref] = None
        logger.debug("Resolving reference %s", ref)
        node = self.build(target, None, None, 'reference', ref)
        self.arena.references[ref] = node.index


def parse(definition: Dict[str, Any], definitions: Optional[Dict[str, Any]] = None) -> SchemaNode:
    """
    Parse a schema definition into a tree of SchemaNode objects.

    Args:
        definition: The schema definition.
        definitions: Additional named definitions made available to
            '#/definitions/<name>' references.

    Returns:
        SchemaNode: The root node.

    Raises:
        SchemaDefinitionError: If the definition is structurally invalid.
    """
    if definitions:
        definition = dict(definition)
        definition['definitions'] = {**definition.get('definitions', {}), **definitions}
    arena = SchemaArena(definition)
    root = _SchemaBuilder(arena).build(definition, None, None, 'root', '#')
    logger.debug("Parsed schema into %d nodes", len(arena.nodes))
    return root
