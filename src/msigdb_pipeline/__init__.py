"""msigdb-pipeline: flattened MSigDB gene set tables with reconciled gene identifiers."""

__version__ = "0.1.0"
