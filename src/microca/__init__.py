"""microca: a small self-bootstrapping certificate authority for local services."""

__version__ = "0.1.0"
