"""EVM trace records, simple inspectors, a trace tree printer and tracer helpers."""

__version__ = "0.33.2"

__all__ = ["builtins", "common", "opcount", "steps", "transfer", "types", "writer"]