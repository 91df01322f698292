import configparser

import pytest

from hifi_cli.exceptions import ConfigurationError
from hifi_cli.models.config import AppConfig
from hifi_cli.models.quality import AudioFormat
from hifi_cli.storage.config_manager import ConfigManager


def test_missing_file_gives_defaults(tmp_path):
    config = ConfigManager(tmp_path / "config.ini").load_config()
    assert config.download_format is AudioFormat.FLAC
    assert config.album_delay == 0.25
    assert config.volume == 50
    assert not (tmp_path / "config.ini").exists()


def test_cli_options_override_file(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\ndownload_format = flac\nvolume = 30\n", encoding="utf-8")
    config = ConfigManager(path).load_config({"download_format": "MP3"})
    assert config.download_format is AudioFormat.MP3
    assert config.volume == 30


def test_missing_keys_are_migrated(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nvolume = 30\n", encoding="utf-8")
    ConfigManager(path).load_config()

    parser = configparser.ConfigParser()
    parser.read(path, encoding="utf-8")
    assert set(parser["DEFAULT"]) == AppConfig.get_ini_keys()
    assert parser["DEFAULT"]["volume"] == "30"


def test_invalid_value_raises_configuration_error(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\ndownload_format = ogg\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


def test_update_persists(tmp_path):
    manager = ConfigManager(tmp_path / "hifi" / "config.ini")
    updated = manager.update(volume="70", download_format="mp3", embed_tags="false")
    assert updated.volume == 70
    assert updated.embed_tags is False

    reloaded = ConfigManager(tmp_path / "hifi" / "config.ini").load_config()
    assert reloaded.volume == 70
    assert reloaded.download_format is AudioFormat.MP3
    assert reloaded.embed_tags is False


def test_update_rejects_bad_value(tmp_path):
    manager = ConfigManager(tmp_path / "config.ini")
    with pytest.raises(ConfigurationError):
        manager.update(volume="300")


def test_resolve_download_dir_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    config = AppConfig(download_dir=str(tmp_path / "missing"))
    resolved = config.resolve_download_dir()
    assert resolved == tmp_path / "Music" / "hifi-cli"
    assert resolved.is_dir()

    config.download_dir = str(tmp_path)
    assert config.resolve_download_dir() == tmp_path
