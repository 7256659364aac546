import importlib

mod = "combinatorize"
class LazyLoader:
    """
    Lazy loader for the combinatorize functions to speed up startup time.
    """
    def __init__(self, mappings):
        self._modules = {}
        self._mappings = mappings

    def _load_module(self, module_name):
        if module_name not in self._modules:
            self._modules[module_name] = importlib.import_module(module_name)
        return self._modules[module_name]

    def __getattr__(self, item):
        if item in self._mappings:
            module_name, func_name = self._mappings[item]
            module = self._load_module(module_name)
            return getattr(module, func_name)
        else:
            return self._load_module(f"{mod}.{item}")

# Define the functions and their corresponding module paths
_mappings = {
    "parse": (f"{mod}.schemamodel", "parse"),
    "SchemaNode": (f"{mod}.schemamodel", "SchemaNode"),
    "SchemaDefinitionError": (f"{mod}.schemamodel", "SchemaDefinitionError"),
    "UnresolvedReferenceError": (f"{mod}.schemamodel", "UnresolvedReferenceError"),
    "explode": (f"{mod}.exploder", "explode"),
    "expand_schemas": (f"{mod}.exploder", "expand_schemas"),
    "UnsupportedCombinatorError": (f"{mod}.exploder", "UnsupportedCombinatorError"),
    "validate_all": (f"{mod}.validator", "validate_all"),
    "Report": (f"{mod}.validator", "Report"),
    "interpret_results": (f"{mod}.interpreter", "interpret_results"),
    "flatten_messages": (f"{mod}.interpreter", "flatten_messages"),
    "DataSet": (f"{mod}.dataset", "DataSet"),
    "ExpressionEvaluator": (f"{mod}.dataset", "ExpressionEvaluator"),
    "evaluate_derived": (f"{mod}.dataset", "evaluate_derived"),
    "REQUIRED": (f"{mod}.constants", "REQUIRED"),
    "validate_schema": (f"{mod}.validate", "validate_schema"),
    "validate_exploded": (f"{mod}.validate", "validate_exploded"),
    "validate_field": (f"{mod}.validate", "validate_field"),
    "validate_instance": (f"{mod}.validate", "validate_instance"),
    "validate_file": (f"{mod}.validate", "validate_file"),
}

_lazy_loader = LazyLoader(_mappings)

def __getattr__(name):
    return getattr(_lazy_loader, name)
