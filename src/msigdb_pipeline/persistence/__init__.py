"""Persistence layer for snapshot checkpoints and provenance tracking."""

from msigdb_pipeline.persistence.duckdb_store import PipelineStore, checkpoint_name
from msigdb_pipeline.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker", "checkpoint_name"]
