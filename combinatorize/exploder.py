""" Expands schema definitions with anyOf / allOf into combinator-free variants. """

# pylint: disable=line-too-long

import copy
import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

from jsonpointer import JsonPointerException, resolve_pointer

from combinatorize.common import has_composition_keywords, merge_schemas
from combinatorize.constants import ALL_OF, ANY_OF, ONE_OF
from combinatorize.schemamodel import SchemaDefinitionError, SchemaNode, UnresolvedReferenceError, parse

logger = logging.getLogger(__name__)


class UnsupportedCombinatorError(SchemaDefinitionError):
    """Exception raised when a schema uses a combinator that cannot be expanded."""


class ExplodeResult(NamedTuple):
    """ Variants of an exploded schema. """
    variants: List[SchemaNode]
    did_explode: bool
    definitions: List[Dict[str, Any]]


def _location(path: Tuple[str, ...]) -> str:
    return '#/' + '/'.join(path) if path else '#'


def _collect_refs(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        ref = value.get('$ref')
        if isinstance(ref, str):
            yield ref
        for child in value.values():
            yield from _collect_refs(child)
    elif isinstance(value, list):
        for child in value:
            yield from _collect_refs(child)


class SchemaExploder:
    """
    Turns a schema definition into the list of concrete schemas it describes.

    * anyOf: every alternative, merged over the node, is a separate variant.
    * allOf: every alternative is merged over the node and exploded; the
      results are combined as a cartesian product.
    * properties: a property that explodes multiplies the object that holds
      it, and with it every ancestor up to the root. Each ancestor is rebuilt
      bottom-up with the substituted child while the recursion unwinds, so
      no node that is shared between variants is ever modified.
    * items: one array variant per item variant.
    * $ref: a local reference whose target carries combinators is replaced
      by the target and exploded in place. References to targets without
      combinators, and the self reference '#', are kept.

    oneOf cannot be expanded and is rejected.

    Attributes:
        max_variants: Optional upper bound on the number of variants produced
            for any node. Exceeding it raises SchemaDefinitionError.
    """

    def __init__(self, max_variants: Optional[int] = None) -> None:
        self.max_variants = max_variants
        self._root: Dict[str, Any] = {}
        self._expanding: Tuple[str, ...] = ()

    def expand(self, definition: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Expand a definition.

        Returns:
            Tuple[List[Dict[str, Any]], bool]: The independent variant
            definitions and whether any combinator was expanded.
        """
        self._root = definition
        self._expanding = ()
        variants, exploded = self.explode_node(definition, ())
        if exploded:
            variants = [self._drop_expanded_definitions(variant) for variant in variants]
        logger.debug("Schema expanded into %d variant(s)", len(variants))
        return [copy.deepcopy(variant) for variant in variants], exploded

    def explode_node(self, node: Any, path: Tuple[str, ...]) -> Tuple[List[Dict[str, Any]], bool]:
        """ Explode one node; the returned variants may share unchanged subtrees. """
        if not isinstance(node, dict):
            raise SchemaDefinitionError(f"Schema must be an object, got {type(node).__name__}", _location(path))

        if '$ref' in node:
            return self.explode_reference(node, path)

        if ONE_OF in node:
            raise UnsupportedCombinatorError("oneOf is currently not supported", _location(path))

        if ANY_OF in node:
            return self.explode_any_of(node, path), True

        if ALL_OF in node:
            return self.explode_all_of(node, path), True

        if isinstance(node.get('properties'), dict):
            return self.explode_properties(node, path)

        if isinstance(node.get('items'), dict):
            item_variants, exploded = self.explode_node(node['items'], path + ('items',))
            if not exploded:
                return [node], False
            return [{**node, 'items': item} for item in item_variants], True

        return [node], False

    def explode_reference(self, node: Dict[str, Any], path: Tuple[str, ...]) -> Tuple[List[Dict[str, Any]], bool]:
        ref = node['$ref']
        if not isinstance(ref, str) or not ref.startswith('#/'):
            return [node], False
        target = self._resolve(ref, path)
        if not self._carries_combinators(target, set()):
            return [node], False
        if ref in self._expanding:
            raise UnsupportedCombinatorError(f"Recursive reference {ref} carries combinators and cannot be expanded", _location(path))

        logger.debug("Expanding reference %s at %s", ref, _location(path))
        rest = {key: value for key, value in node.items() if key != '$ref'}
        self._expanding += (ref,)
        try:
            return self.explode_node(merge_schemas(target, rest), path)
        finally:
            self._expanding = self._expanding[:-1]

    def explode_any_of(self, node: Dict[str, Any], path: Tuple[str, ...]) -> List[Dict[str, Any]]:
        alternatives = self._alternatives(node, ANY_OF, path)
        rest = {key: value for key, value in node.items() if key != ANY_OF}
        variants: List[Dict[str, Any]] = []
        for i, alternative in enumerate(alternatives):
            exploded, _ = self.explode_node(merge_schemas(rest, alternative), path + (ANY_OF, str(i)))
            variants.extend(exploded)
            self._check_count(variants, path)
        return variants

    def explode_all_of(self, node: Dict[str, Any], path: Tuple[str, ...]) -> List[Dict[str, Any]]:
        alternatives = self._alternatives(node, ALL_OF, path)
        rest = {key: value for key, value in node.items() if key != ALL_OF}
        variants: Optional[List[Dict[str, Any]]] = None
        for i, alternative in enumerate(alternatives):
            location = path + (ALL_OF, str(i))
            if ONE_OF in alternative:
                raise UnsupportedCombinatorError("oneOf is not supported inside allOf", _location(location))
            exploded, _ = self.explode_node(merge_schemas(rest, alternative), location)
            if variants is None:
                variants = exploded
            else:
                variants = [merge_schemas(current, addition) for current in variants for addition in exploded]
            self._check_count(variants, path)
        return variants

    def explode_properties(self, node: Dict[str, Any], path: Tuple[str, ...]) -> Tuple[List[Dict[str, Any]], bool]:
        branches = [node]
        exploded_any = False
        for key, child in node['properties'].items():
            child_path = path + ('properties', key)
            child_variants, exploded = self.explode_node(child, child_path)
            if not exploded:
                continue
            exploded_any = True
            if len(child_variants) > 1:
                logger.debug("Property %s multiplies its object %d times", _location(child_path), len(child_variants))
            branches = [self._with_property(branch, key, variant) for branch in branches for variant in child_variants]
            self._check_count(branches, path)
        return branches, exploded_any

    def _with_property(self, branch: Dict[str, Any], key: str, value: Dict[str, Any]) -> Dict[str, Any]:
        properties = dict(branch['properties'])
        properties[key] = value
        return {**branch, 'properties': properties}

    def _alternatives(self, node: Dict[str, Any], keyword: str, path: Tuple[str, ...]) -> List[Dict[str, Any]]:
        alternatives = node[keyword]
        if not isinstance(alternatives, list) or not alternatives:
            raise SchemaDefinitionError(f"'{keyword}' must be a non-empty list of schemas", _location(path))
        for i, alternative in enumerate(alternatives):
            if not isinstance(alternative, dict):
                raise SchemaDefinitionError("Combinator alternatives must be objects", _location(path + (keyword, str(i))))
        return alternatives

    def _resolve(self, ref: str, path: Tuple[str, ...]) -> Any:
        try:
            return resolve_pointer(self._root, ref[1:])
        except JsonPointerException as e:
            raise UnresolvedReferenceError(f"Could not find definition in your schema: {ref}", _location(path)) from e

    def _carries_combinators(self, definition: Any, seen: Set[str]) -> bool:
        """ True if a combinator is reachable through properties, items or local references. """
        if not isinstance(definition, dict):
            return False
        if has_composition_keywords(definition):
            return True
        ref = definition.get('$ref')
        if isinstance(ref, str) and ref.startswith('#/') and ref not in seen:
            seen.add(ref)
            if self._carries_combinators(self._resolve(ref, ()), seen):
                return True
        children = list(definition['properties'].values()) if isinstance(definition.get('properties'), dict) else []
        children.append(definition.get('items'))
        return any(self._carries_combinators(child, seen) for child in children)

    def _drop_expanded_definitions(self, variant: Dict[str, Any]) -> Dict[str, Any]:
        """ Remove named definitions that carry combinators and are no longer referenced. """
        refs = set(_collect_refs(variant))
        for container in ('definitions', '$defs'):
            entries = variant.get(container)
            if not isinstance(entries, dict):
                continue
            kept = {}
            for name, entry in entries.items():
                pointer = f"#/{container}/{name}"
                if any(ref == pointer or ref.startswith(pointer + '/') for ref in refs) or not self._carries_combinators(entry, set()):
                    kept[name] = entry
            if kept:
                variant = {**variant, container: kept}
            else:
                variant = {key: value for key, value in variant.items() if key != container}
        return variant

    def _check_count(self, variants: List[Dict[str, Any]], path: Tuple[str, ...]) -> None:
        if self.max_variants is not None and len(variants) > self.max_variants:
            raise SchemaDefinitionError(f"Schema explodes into more than {self.max_variants} variants", _location(path))


def expand_schemas(definition: Dict[str, Any], max_variants: Optional[int] = None) -> Tuple[List[Dict[str, Any]], bool]:
    """
    Expand a schema definition into combinator-free variant definitions.

    Args:
        definition: The schema definition.
        max_variants: Optional bound on the number of variants.

    Returns:
        Tuple[List[Dict[str, Any]], bool]: The variants and whether anything exploded.
    """
    return SchemaExploder(max_variants).expand(definition)


def explode(definition: Dict[str, Any], max_variants: Optional[int] = None, definitions: Optional[Dict[str, Any]] = None) -> ExplodeResult:
    """
    Expand a schema definition and parse every variant.

    Args:
        definition: The schema definition.
        max_variants: Optional bound on the number of variants.
        definitions: Additional named definitions for '$ref' resolution.

    Returns:
        ExplodeResult: Parsed variants, the did_explode flag and the variant definitions.
    """
    if definitions:
        definition = {**definition, 'definitions': {**definition.get('definitions', {}), **definitions}}
    variant_definitions, did_explode = expand_schemas(definition, max_variants)
    variants = [parse(variant) for variant in variant_definitions]
    return ExplodeResult(variants, did_explode, variant_definitions)
