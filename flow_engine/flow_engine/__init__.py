"""sqlflow analysis engine: per-statement flow graphs and workspace lineage."""

__version__ = "0.1.0"
