"""Provenance of gene set table builds."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProvenanceTracker:
    """
    Collects what one build run read and produced.

    A run covers one MSigDB release and one or more species. Each step is
    tagged with the MSigDB version it worked on, so per-species row counts
    and resolver tier counts can be traced back from the DuckDB store.
    """

    def __init__(self, pipeline_version: str, config: "PipelineConfig"):
        self.pipeline_version = pipeline_version
        self.config_hash = config.config_hash()
        self.msigdb_release = config.msigdb.release
        self.species = list(config.msigdb.species)
        self.started_at = _utc_now()
        self.steps: list[dict] = []

    def record_step(
        self,
        step_name: str,
        details: Optional[dict] = None,
        version: Optional[str] = None,
    ) -> None:
        """
        Append a step to the run.

        Args:
            step_name: e.g. load_snapshot, build_species_tables
            details: Counts or settings worth keeping (JSON-serializable)
            version: MSigDB version the step applies to (e.g. 2024.1.Hs)
        """
        step = {"step_name": step_name, "recorded_at": _utc_now()}
        if version:
            step["msigdb_version"] = version
        if details:
            step["details"] = details
        self.steps.append(step)

    def steps_for(self, version: str) -> list[dict]:
        return [step for step in self.steps if step.get("msigdb_version") == version]

    def create_metadata(self) -> dict:
        return {
            "pipeline_version": self.pipeline_version,
            "msigdb_release": self.msigdb_release,
            "species": self.species,
            "config_hash": self.config_hash,
            "started_at": self.started_at,
            "steps": self.steps,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """Write the run metadata next to `output_path` as {stem}.provenance.json."""
        sidecar_path = Path(output_path).with_suffix(".provenance.json")
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)
        sidecar_path.write_text(json.dumps(self.create_metadata(), indent=2, default=str))
        return sidecar_path

    @staticmethod
    def load_sidecar(sidecar_path: Path) -> dict:
        return json.loads(Path(sidecar_path).read_text())

    def save_to_store(self, store: "PipelineStore") -> None:
        """
        Record the run in the store: one row in _provenance, one row per
        step in _provenance_steps.
        """
        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance (
                started_at VARCHAR,
                pipeline_version VARCHAR,
                msigdb_release VARCHAR,
                species VARCHAR,
                config_hash VARCHAR
            )
        """)
        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance_steps (
                started_at VARCHAR,
                step_index INTEGER,
                step_name VARCHAR,
                msigdb_version VARCHAR,
                details_json VARCHAR
            )
        """)

        store.conn.execute(
            "INSERT INTO _provenance VALUES (?, ?, ?, ?, ?)",
            [
                self.started_at,
                self.pipeline_version,
                self.msigdb_release,
                ",".join(self.species),
                self.config_hash,
            ],
        )
        store.conn.executemany(
            "INSERT INTO _provenance_steps VALUES (?, ?, ?, ?, ?)",
            [
                [
                    self.started_at,
                    index,
                    step["step_name"],
                    step.get("msigdb_version"),
                    json.dumps(step.get("details", {}), default=str),
                ]
                for index, step in enumerate(self.steps)
            ],
        )

    @classmethod
    def from_config(
        cls,
        config: "PipelineConfig",
        version: Optional[str] = None,
    ) -> "ProvenanceTracker":
        """Tracker for a run with `config`; version defaults to the package version."""
        if version is None:
            from msigdb_pipeline import __version__
            version = __version__

        return cls(version, config)
