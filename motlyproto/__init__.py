import importlib

mod = "motlyproto"
class LazyLoader:
    """
    Lazy loader for the motlyproto functions to speed up startup time.
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
    "convert_motly_schema_to_proto": (f"{mod}.motlytoproto", "convert_motly_schema_to_proto"),
    "convert_motly_to_proto": (f"{mod}.motlytoproto", "convert_motly_to_proto"),
    "MotlyParseError": (f"{mod}.motlyparser", "MotlyParseError"),
    "parse_tag": (f"{mod}.motlyparser", "parse_tag"),
    "parse_directives": (f"{mod}.motlyparser", "parse_directives"),
}

_lazy_loader = LazyLoader(_mappings)

def __getattr__(name):
    return getattr(_lazy_loader, name)
