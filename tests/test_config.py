import pytest

from mc_sched.core.config import DEFAULT_SETTINGS, SettingsError, load_and_merge, load_settings_file


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("MC_SCHED_SEED", raising=False)
    monkeypatch.delenv("MC_SCHED_LOG_LEVEL", raising=False)


def test_defaults_without_file():
    assert load_and_merge(None) == DEFAULT_SETTINGS


def test_settings_file_overrides_defaults():
    s = load_and_merge("examples/settings.yaml")
    assert s == {"date_format": "rel", "seed": 7, "log_level": "INFO"}


def test_env_overrides_settings_file(monkeypatch):
    monkeypatch.setenv("MC_SCHED_SEED", "99")
    monkeypatch.setenv("MC_SCHED_LOG_LEVEL", "debug")
    s = load_and_merge("examples/settings.yaml")
    assert s["seed"] == 99
    assert s["log_level"] == "DEBUG"
    assert s["date_format"] == "rel"


def test_bad_env_seed(monkeypatch):
    monkeypatch.setenv("MC_SCHED_SEED", "lots")
    with pytest.raises(SettingsError):
        load_and_merge(None)


def test_rejects_unknown_and_invalid_keys(tmp_path):
    p = tmp_path / "s.yaml"
    p.write_text("colour: blue\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(p)
    p.write_text("date_format: sideways\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(p)
    p.write_text("log_level: LOUD\n", encoding="utf-8")
    with pytest.raises(SettingsError):
        load_settings_file(p)


def test_empty_file_is_no_overrides(tmp_path):
    p = tmp_path / "s.yaml"
    p.write_text("", encoding="utf-8")
    assert load_settings_file(p) == {}
