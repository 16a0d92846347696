"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from msigdb_pipeline.config import load_config, load_config_with_overrides
from msigdb_pipeline.config.schema import PipelineConfig
from msigdb_pipeline.exceptions import InvalidArgumentError


def write_config(path, body=""):
    path.write_text(f"""
data_dir: {path.parent / "data"}
cache_dir: {path.parent / "cache"}
output_dir: {path.parent / "tables"}
duckdb_path: {path.parent / "test.duckdb"}
{body}
""")
    return path


def test_load_valid_config():
    """Test loading valid default configuration."""
    config = load_config("config/default.yaml")

    assert isinstance(config, PipelineConfig)
    assert config.msigdb.release == "2024.1"
    assert config.msigdb.species == ["Hs", "Mm"]
    assert config.msigdb.timeout_seconds == 100
    assert config.validation.ensembl.min_chip_rows == 40000
    assert config.validation.ensembl.min_single_mapping_fraction == 0.9
    assert config.validation.members.min_ncbi_genes == 30000
    assert config.validation.members.max_gene_sets == 50000
    assert config.validation.release.min_gene_sets_hs == 30000
    assert config.validation.release.min_hs_to_mm_row_ratio == 1.5


def test_defaults_apply_when_sections_omitted(tmp_path):
    """Test that msigdb and validation sections fall back to defaults."""
    config = load_config(write_config(tmp_path / "minimal.yaml"))

    assert config.msigdb.release == "2024.1"
    assert config.validation.members.min_pair_ncbi_fraction == 0.95


def test_invalid_config_missing_field(tmp_path):
    """Test that missing required field raises ValidationError."""
    invalid_config = tmp_path / "invalid.yaml"
    invalid_config.write_text("""
msigdb:
  release: "2024.1"
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(invalid_config)

    assert "data_dir" in str(exc_info.value)


def test_invalid_release_format(tmp_path):
    """Test that a release with a species suffix is rejected."""
    config_file = write_config(tmp_path / "invalid.yaml", """
msigdb:
  release: "2024.1.Hs"
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(config_file)

    assert "YYYY.N" in str(exc_info.value)


def test_species_normalized_and_validated(tmp_path):
    """Test that species codes are capitalized and unknown ones rejected."""
    config = load_config(write_config(tmp_path / "ok.yaml", """
msigdb:
  species: [HS, mm]
"""))
    assert config.msigdb.species == ["Hs", "Mm"]

    with pytest.raises(ValidationError):
        load_config(write_config(tmp_path / "bad.yaml", """
msigdb:
  species: [Rn]
"""))


def test_fraction_out_of_range(tmp_path):
    """Test that threshold fractions above 1 are rejected."""
    config_file = write_config(tmp_path / "invalid.yaml", """
validation:
  ensembl:
    min_single_mapping_fraction: 1.5
""")

    with pytest.raises(ValidationError) as exc_info:
        load_config(config_file)

    assert "min_single_mapping_fraction" in str(exc_info.value)


def test_config_hash_deterministic():
    """Test that config hash is deterministic and changes with config."""
    config1 = load_config("config/default.yaml")
    config2 = load_config("config/default.yaml")

    assert config1.config_hash() == config2.config_hash()
    assert len(config1.config_hash()) == 64

    config3 = load_config_with_overrides(
        "config/default.yaml",
        {"msigdb.release": "2023.2"},
    )
    assert config3.msigdb.release == "2023.2"
    assert config3.config_hash() != config1.config_hash()


def test_override_nested_threshold():
    """Test that dotted overrides reach nested validation models."""
    config = load_config_with_overrides(
        "config/default.yaml",
        {"validation.members.min_gene_sets": 5},
    )

    assert config.validation.members.min_gene_sets == 5


def test_config_creates_directories(tmp_path):
    """Test that loading config creates data, cache and output directories."""
    config_file = write_config(tmp_path / "test_config.yaml")

    for name in ("data", "cache", "tables"):
        assert not (tmp_path / name).exists()

    load_config(config_file)

    for name in ("data", "cache", "tables"):
        assert (tmp_path / name).is_dir()


def test_override_unknown_section():
    with pytest.raises(InvalidArgumentError, match="msigbd.release"):
        load_config_with_overrides("config/default.yaml", {"msigbd.release": "2023.2"})


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")
