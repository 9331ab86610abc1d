"""Cost optimization rules: catalog, registry and engine."""
