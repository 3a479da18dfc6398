import pytest

from image_transform.config import (
    DEFAULT_CACHE_MAX_MEM,
    DEFAULT_CACHE_MAX_OPS,
    SubsystemConfig,
    load_env_file,
)

_VARS = ("VIPS_CONCURRENCY", "VIPS_TRACE", "IMAGE_TRANSFORM_CACHE_MAX_MEM", "IMAGE_TRANSFORM_CACHE_MAX_OPS")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_environment():
    cfg = SubsystemConfig.from_env()
    assert cfg.max_cache_mem == DEFAULT_CACHE_MAX_MEM
    assert cfg.max_cache_ops == DEFAULT_CACHE_MAX_OPS
    assert cfg.concurrency is None
    assert cfg.trace is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("VIPS_CONCURRENCY", "3")
    monkeypatch.setenv("VIPS_TRACE", "yes")
    monkeypatch.setenv("IMAGE_TRANSFORM_CACHE_MAX_MEM", "1048576")
    monkeypatch.setenv("IMAGE_TRANSFORM_CACHE_MAX_OPS", "0")
    cfg = SubsystemConfig.from_env()
    assert cfg.concurrency == 3
    assert cfg.trace is True
    assert cfg.max_cache_mem == 1048576
    assert cfg.max_cache_ops == 0


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("VIPS_CONCURRENCY", "many")
    monkeypatch.setenv("IMAGE_TRANSFORM_CACHE_MAX_OPS", "lots")
    cfg = SubsystemConfig.from_env()
    assert cfg.concurrency is None
    assert cfg.max_cache_ops == DEFAULT_CACHE_MAX_OPS


def test_non_positive_concurrency_means_auto(monkeypatch):
    monkeypatch.setenv("VIPS_CONCURRENCY", "0")
    assert SubsystemConfig.from_env().concurrency is None


def test_env_file_does_not_override(monkeypatch, tmp_path):
    env = tmp_path / "tuning.env"
    env.write_text(
        "# engine tuning\nVIPS_CONCURRENCY=2\nIMAGE_TRANSFORM_CACHE_MAX_OPS=42\nnot a pair\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("IMAGE_TRANSFORM_CACHE_MAX_OPS", "7")
    cfg = SubsystemConfig.from_env(str(env))
    assert cfg.concurrency == 2
    assert cfg.max_cache_ops == 7


def test_missing_env_file_is_ignored(tmp_path):
    load_env_file(str(tmp_path / "absent.env"))
