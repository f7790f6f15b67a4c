"""reviewgraph: change impact analysis and sandboxed patch validation."""

__version__ = "0.1.0"
