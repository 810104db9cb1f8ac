import pytest

from gurulo.config.cache import Cache
from gurulo.config.core import Core
from gurulo.config.loader import load_raw_config
from gurulo.config.stream import Stream
from gurulo.config.sync import Sync


def test_missing_config_file_yields_empty_dict(tmp_path):
    assert load_raw_config(tmp_path / "absent.toml") == {}


def test_toml_sections_override_defaults(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        "[gurulo.models]\n"
        'message_model = "gpt-test"\n'
        "[gurulo.cache]\n"
        "response_cache_size = 10\n"
        "[gurulo.stream]\n"
        "admission_limit = 2\n"
        "[gurulo.sync]\n"
        f'primary_dir = "{tmp_path.as_posix()}/p"\n'
        "max_retries = 5\n"
    )
    raw = load_raw_config(path)

    assert Core(raw).MSG_MODEL_ID == "gpt-test"
    assert Cache(raw).RESPONSE_CACHE_SIZE == 10
    assert Stream(raw).ADMISSION_LIMIT == 2
    sync = Sync(raw)
    assert sync.PRIMARY_DIR.endswith("/p")
    assert sync.MAX_RETRIES == 5


def test_environment_fallbacks(monkeypatch):
    monkeypatch.setenv("MEMORY_SYNC_INTERVAL", "7.5")
    monkeypatch.setenv("STREAM_CLEANUP_TIMEOUT", "12")

    assert Sync().SYNC_INTERVAL == 7.5
    assert Stream().CLEANUP_TIMEOUT == 12
    assert Cache().RESPONSE_TTL == 3600


def test_core_requires_api_key_and_model(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("MSG_MODEL_ID", raising=False)

    with pytest.raises(ValueError, match="OPENAI_API_KEY, MSG_MODEL_ID"):
        Core({})


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.toml"
    path.write_text("[gurulo.stream]\nreap_interval = 5\n")
    monkeypatch.setenv("GURULO_CONFIG", str(path))

    assert Stream(load_raw_config()).REAP_INTERVAL == 5


def test_non_table_gurulo_section_is_rejected(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('gurulo = "oops"\n')

    with pytest.raises(ValueError, match="must be a table"):
        load_raw_config(path)


def test_reload_updates_shared_sections(tmp_path):
    from gurulo import config

    path = tmp_path / "config.toml"
    path.write_text("[gurulo.stream]\nadmission_limit = 9\n")
    try:
        config.reload(path)
        assert config.stream.ADMISSION_LIMIT == 9
        assert config.Config.stream is config.stream
    finally:
        config.reload(tmp_path / "absent.toml")
    assert config.stream.ADMISSION_LIMIT == 5
