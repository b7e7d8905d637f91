"""Per-provider quirks: probes, auth headers and SDK adapters."""
