"""Domain layer: record values, schema metadata, ports and the reconciliation core."""
