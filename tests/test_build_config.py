from pathlib import Path

import pytest

from mpi_provisioner.build_config import (
    BuildConfig,
    bind_vars,
    default_ompi_url,
    load_build_config,
    parse_var_overrides,
)
from mpi_provisioner.errors import ConfigError


def test_defaults_derive_ompi_url():
    bv = bind_vars()
    assert bv.ompi_version == "4.1.6"
    assert bv.ompi_url == "https://download.open-mpi.org/release/open-mpi/v4.1/openmpi-4.1.6.tar.bz2"
    assert bv.prefix == "/usr/local"


def test_version_override_moves_url():
    bv = bind_vars({"ompi_version": "5.0.3"})
    assert bv.ompi_url == default_ompi_url("5.0.3")
    assert "/v5.0/openmpi-5.0.3.tar.bz2" in bv.ompi_url


def test_later_layers_win():
    bv = bind_vars({"ucx_version": "v1.15.0"}, {"ucx_version": "v1.17.0"})
    assert bv.ucx_version == "v1.17.0"


def test_explicit_url_is_kept():
    bv = bind_vars({"ompi_url": "https://mirror.example/ompi.tar.gz"})
    assert bv.ompi_url == "https://mirror.example/ompi.tar.gz"


def test_unknown_variable_rejected():
    with pytest.raises(ConfigError, match="Unknown build variable"):
        bind_vars({"ucx_verison": "v1"})


def test_relative_prefix_rejected():
    with pytest.raises(ConfigError):
        bind_vars({"prefix": "usr/local"})


def test_parse_var_overrides():
    assert parse_var_overrides(["ucx_version=v1.15.0", "optflags=-O2 -g"]) == {
        "ucx_version": "v1.15.0",
        "optflags": "-O2 -g",
    }
    with pytest.raises(ConfigError):
        parse_var_overrides(["novalue"])


def test_load_yaml(tmp_path):
    p = tmp_path / "build_config.yaml"
    p.write_text(
        "paths:\n  target_root: /srv/img\npackage_manager: apt\njobs: 2\n"
        "vars:\n  slurm_version: slurm-24-05-1-1\npackages:\n  base: [git, curl]\n",
        encoding="utf-8",
    )
    cfg = load_build_config(str(p))
    assert cfg.target_root == "/srv/img"
    assert cfg.package_manager == "apt"
    assert cfg.jobs == 2
    assert cfg.vars == {"slurm_version": "slurm-24-05-1-1"}
    assert cfg.packages("base") == ["git", "curl"]
    assert cfg.packages("psm2") is None


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_build_config(str(tmp_path / "nope.yaml"))
    assert load_build_config(str(tmp_path / "nope.yaml"), required=False).raw == {}


def test_non_mapping_config(tmp_path):
    p = tmp_path / "c.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_build_config(str(p))


def test_non_yaml_suffix(tmp_path):
    p = tmp_path / "c.json"
    p.write_text("{}", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_build_config(str(p))


def test_jobs_validation():
    with pytest.raises(ConfigError):
        BuildConfig(raw={"jobs": 0}).jobs
    with pytest.raises(ConfigError):
        BuildConfig(raw={"jobs": "many"}).jobs
    assert BuildConfig(raw={}).jobs >= 1


def test_shipped_config_follows_version_override():
    shipped = Path(__file__).resolve().parents[1] / "build_config.yaml"
    cfg = load_build_config(str(shipped))
    bv = bind_vars(cfg.vars, {"ompi_version": "5.0.3"})
    assert bv.ompi_url == "https://download.open-mpi.org/release/open-mpi/v5.0/openmpi-5.0.3.tar.bz2"
