import copy
import os
import sys
import unittest

from jsoncomparison import NO_DIFF, Compare

current_script_path = os.path.abspath(__file__)
project_root = os.path.dirname(os.path.dirname(current_script_path))
sys.path.append(project_root)

from combinatorize.exploder import SchemaExploder, UnsupportedCombinatorError, expand_schemas, explode
from combinatorize.schemamodel import SchemaDefinitionError, SchemaKind, UnresolvedReferenceError


def schema():
    return {
        "type": "object",
        "properties": {
            "first": {"type": "number"},
            "second": {"type": "number"},
            "third": {"type": "number"},
            "fourth": {"type": "number"}
        }
    }


class TestSchemaExploder(unittest.TestCase):

    def assert_json_equal(self, actual, expected):
        diff = Compare().check(expected, actual)
        self.assertEqual(diff, NO_DIFF, f"{actual} != {expected}")

    def test_explodes_simple_any_of(self):
        s = schema()
        s["anyOf"] = [{"required": ["first"]}, {"required": ["second"]}]
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assert_json_equal(variants, [
            {**schema(), "required": ["first"]},
            {**schema(), "required": ["second"]},
        ])

    def test_explodes_nested_any_of(self):
        s = schema()
        s["anyOf"] = [
            {"anyOf": [{"required": ["first"]}, {"required": ["third"]}]},
            {"required": ["second"]}
        ]
        variants, _ = expand_schemas(s)
        self.assertEqual([variant["required"] for variant in variants], [["first"], ["third"], ["second"]])
        for variant in variants:
            self.assertNotIn("anyOf", variant)
            self.assert_json_equal(variant["properties"], schema()["properties"])

    def test_explodes_simple_all_of(self):
        s = schema()
        s["allOf"] = [{"required": ["first"]}, {"required": ["second"]}, {"required": ["fourth"]}]
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assert_json_equal(variants, [{**schema(), "required": ["first", "second", "fourth"]}])

    def test_explodes_all_of_with_any_of(self):
        s = schema()
        s["allOf"] = [
            {"required": ["first"]},
            {"anyOf": [{"required": ["second"]}, {"required": ["third"]}]},
            {"required": ["fourth"]}
        ]
        variants, _ = expand_schemas(s)

        self.assert_json_equal(variants, [
            {**schema(), "required": ["first", "second", "fourth"]},
            {**schema(), "required": ["first", "third", "fourth"]},
        ])

    def test_all_of_required_union_keeps_order(self):
        variants, _ = expand_schemas({
            "type": "object",
            "properties": {},
            "required": ["zero"],
            "allOf": [{"required": ["first", "zero"]}, {"required": ["second", "first"]}]
        })
        self.assertEqual(variants[0]["required"], ["zero", "first", "second"])

    def test_explodes_multiple_properties(self):
        s = schema()
        s["properties"]["first"]["anyOf"] = [{"minimum": 2}, {"maximum": 10}]
        s["properties"]["third"]["anyOf"] = [{"minimum": 0}, {"maximum": 1}]
        variants, _ = expand_schemas(s)

        def variant(first, third):
            result = schema()
            result["properties"]["first"].update(first)
            result["properties"]["third"].update(third)
            return result

        self.assert_json_equal(variants, [
            variant({"minimum": 2}, {"minimum": 0}),
            variant({"minimum": 2}, {"maximum": 1}),
            variant({"maximum": 10}, {"minimum": 0}),
            variant({"maximum": 10}, {"maximum": 1}),
        ])

    def test_explodes_combination_of_multiple_properties(self):
        s = schema()
        s["properties"]["first"]["anyOf"] = [{"minimum": 2}, {"maximum": 10}]
        s["properties"]["third"]["allOf"] = [{"minimum": 0}, {"maximum": 1}]
        variants, _ = expand_schemas(s)

        self.assertEqual(len(variants), 2)
        self.assertEqual(variants[0]["properties"]["first"], {"type": "number", "minimum": 2})
        self.assertEqual(variants[1]["properties"]["first"], {"type": "number", "maximum": 10})
        for v in variants:
            self.assertEqual(v["properties"]["third"], {"type": "number", "minimum": 0, "maximum": 1})

    def test_explodes_deep_properties(self):
        s = {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "first": {
                    "type": "object",
                    "properties": {
                        "second": {
                            "type": "object",
                            "properties": {
                                "third": {"type": "number", "anyOf": [{"minimum": 2}, {"maximum": 2}]},
                                "sibling": {"type": "string"}
                            }
                        }
                    }
                }
            }
        }
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assertEqual(len(variants), 2)
        thirds = [v["properties"]["first"]["properties"]["second"]["properties"]["third"] for v in variants]
        self.assertEqual(thirds, [{"type": "number", "minimum": 2}, {"type": "number", "maximum": 2}])
        for v in variants:
            self.assertEqual(v["properties"]["name"], {"type": "string"})
            self.assertEqual(v["properties"]["first"]["properties"]["second"]["properties"]["sibling"], {"type": "string"})

    def test_pattern_explosion_round_trip(self):
        s = {
            "properties": {
                "a": {"type": "number", "anyOf": [{"minimum": 0}, {"maximum": 1000}]},
                "b": {"type": "string"}
            }
        }
        variants, _ = expand_schemas(s)

        self.assertEqual(len(variants), 2)
        self.assertEqual(variants[0]["properties"]["a"], {"type": "number", "minimum": 0})
        self.assertEqual(variants[1]["properties"]["a"], {"type": "number", "maximum": 1000})
        for v in variants:
            self.assertEqual(v["properties"]["b"], {"type": "string"})

    def test_explodes_array_items(self):
        s = {
            "type": "array",
            "minItems": 1,
            "items": {"type": "integer", "anyOf": [{"minimum": 10}, {"maximum": 0}]}
        }
        variants, _ = expand_schemas(s)

        self.assertEqual(len(variants), 2)
        self.assertEqual([v["items"] for v in variants], [
            {"type": "integer", "minimum": 10},
            {"type": "integer", "maximum": 0}
        ])
        for v in variants:
            self.assertEqual(v["minItems"], 1)

    def test_product_law(self):
        s = schema()
        s["allOf"] = [
            {"anyOf": [{"required": ["first"]}, {"required": ["second"]}]},
            {"anyOf": [{"required": ["third"]}, {"required": ["fourth"]}, {"required": ["first"]}]}
        ]
        variants, _ = expand_schemas(s)
        self.assertEqual(len(variants), 6)

        s = schema()
        s["anyOf"] = [
            {"anyOf": [{"required": ["first"]}, {"required": ["second"]}]},
            {"anyOf": [{"required": ["third"]}, {"required": ["fourth"]}, {"required": ["first"]}]}
        ]
        variants, _ = expand_schemas(s)
        self.assertEqual(len(variants), 5)

    def test_no_combinator_fixpoint(self):
        s = schema()
        s["properties"]["items"] = {"type": "array", "items": {"type": "string"}}
        variants, exploded = expand_schemas(s)

        self.assertFalse(exploded)
        self.assertEqual(len(variants), 1)
        self.assert_json_equal(variants[0], s)

    def test_input_is_not_modified(self):
        s = schema()
        s["properties"]["first"]["anyOf"] = [{"minimum": 2}, {"maximum": 10}]
        s["allOf"] = [{"required": ["first"]}, {"anyOf": [{"required": ["second"]}, {"required": ["third"]}]}]
        original = copy.deepcopy(s)
        variants, _ = expand_schemas(s)

        self.assert_json_equal(s, original)
        variants[0]["properties"]["second"]["minimum"] = 100
        self.assertNotIn("minimum", variants[1]["properties"]["second"])

    def test_rejects_one_of(self):
        s = schema()
        s["properties"]["first"]["oneOf"] = [{"minimum": 2}, {"maximum": 10}]
        with self.assertRaises(UnsupportedCombinatorError) as context:
            expand_schemas(s)
        self.assertEqual(context.exception.path, "#/properties/first")

    def test_rejects_one_of_inside_all_of(self):
        s = schema()
        s["allOf"] = [{"required": ["first"]}, {"oneOf": [{"required": ["second"]}, {"required": ["third"]}]}]
        with self.assertRaises(UnsupportedCombinatorError) as context:
            expand_schemas(s)
        self.assertEqual(context.exception.path, "#/allOf/1")

    def test_rejects_malformed_combinators(self):
        s = schema()
        s["anyOf"] = {"required": ["first"]}
        with self.assertRaises(SchemaDefinitionError):
            expand_schemas(s)

    def test_explodes_referenced_definitions(self):
        s = {
            "type": "object",
            "definitions": {"n": {"type": "number", "anyOf": [{"minimum": 0}, {"maximum": 10}]}},
            "properties": {"a": {"$ref": "#/definitions/n"}}
        }
        original = copy.deepcopy(s)
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assertEqual(variants, [
            {"type": "object", "properties": {"a": {"type": "number", "minimum": 0}}},
            {"type": "object", "properties": {"a": {"type": "number", "maximum": 10}}},
        ])
        self.assertEqual(s, original)

    def test_keeps_references_without_combinators(self):
        s = {
            "type": "object",
            "$defs": {
                "name": {"type": "string"},
                "n": {"type": "number", "anyOf": [{"minimum": 0}, {"maximum": 10}]}
            },
            "properties": {
                "name": {"$ref": "#/$defs/name"},
                "a": {"$ref": "#/$defs/n", "description": "amount"}
            }
        }
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assertEqual(len(variants), 2)
        for v in variants:
            self.assertEqual(v["properties"]["name"], {"$ref": "#/$defs/name"})
            self.assertEqual(v["$defs"], {"name": {"type": "string"}})
        self.assertEqual(variants[0]["properties"]["a"], {"type": "number", "minimum": 0, "description": "amount"})

        s = {"type": "object", "definitions": {"name": {"type": "string"}}, "properties": {"name": {"$ref": "#/definitions/name"}}}
        variants, exploded = expand_schemas(s)
        self.assertFalse(exploded)
        self.assertEqual(variants, [s])

    def test_explodes_references_through_references(self):
        s = {
            "type": "object",
            "definitions": {
                "n": {"type": "number", "anyOf": [{"minimum": 0}, {"maximum": 10}]},
                "holder": {"type": "object", "properties": {"value": {"$ref": "#/definitions/n"}}}
            },
            "properties": {"a": {"$ref": "#/definitions/holder"}}
        }
        variants, exploded = expand_schemas(s)

        self.assertTrue(exploded)
        self.assertEqual([v["properties"]["a"]["properties"]["value"] for v in variants], [
            {"type": "number", "minimum": 0},
            {"type": "number", "maximum": 10}
        ])
        for v in variants:
            self.assertNotIn("definitions", v)

    def test_rejects_recursive_references_with_combinators(self):
        s = {
            "type": "object",
            "definitions": {
                "node": {
                    "type": "object",
                    "properties": {"child": {"$ref": "#/definitions/node"}},
                    "anyOf": [{"required": ["child"]}, {"required": []}]
                }
            },
            "properties": {"root": {"$ref": "#/definitions/node"}}
        }
        with self.assertRaises(UnsupportedCombinatorError):
            expand_schemas(s)

    def test_rejects_unresolved_references(self):
        s = {"type": "object", "properties": {"a": {"$ref": "#/definitions/missing"}}}
        with self.assertRaises(UnresolvedReferenceError) as context:
            expand_schemas(s)
        self.assertEqual(context.exception.path, "#/properties/a")

    def test_explode_with_external_definitions(self):
        s = {"type": "object", "properties": {"a": {"$ref": "#/definitions/n"}}}
        result = explode(s, definitions={"n": {"type": "number", "anyOf": [{"minimum": 0}, {"maximum": 10}]}})

        self.assertTrue(result.did_explode)
        self.assertEqual(len(result.variants), 2)
        self.assertEqual(result.variants[0].properties["a"].kind, SchemaKind.NUMBER)
        self.assertFalse(result.variants[1].has_combinators)

    def test_max_variants(self):
        s = schema()
        for key in ("first", "second", "third"):
            s["properties"][key]["anyOf"] = [{"minimum": 0}, {"maximum": 10}]
        self.assertEqual(len(SchemaExploder().expand(s)[0]), 8)
        with self.assertRaises(SchemaDefinitionError):
            SchemaExploder(max_variants=4).expand(s)

    def test_explode_parses_variants(self):
        s = schema()
        s["anyOf"] = [{"required": ["first"]}, {"required": ["second"]}]
        result = explode(s)

        self.assertTrue(result.did_explode)
        self.assertEqual(len(result.variants), 2)
        self.assertEqual(result.variants[0].required, ["first"])
        self.assertEqual(result.variants[1].required, ["second"])
        self.assertFalse(result.variants[0].has_combinators)
        self.assertEqual(result.variants[0].properties["fourth"].kind, SchemaKind.NUMBER)
        self.assertEqual(result.definitions[1]["required"], ["second"])

        result = explode(schema())
        self.assertFalse(result.did_explode)
        self.assertEqual(len(result.variants), 1)


if __name__ == '__main__':
    unittest.main()
