"""Service core: configuration, object wiring and lifecycle, registry model, node selection, metadata, logging and client helpers."""

__version__ = "0.1.0"