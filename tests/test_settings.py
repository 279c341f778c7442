from __future__ import annotations

import pytest

from settings import RelayConfig, load_config


def test_defaults_from_empty_environment() -> None:
    config = load_config({})
    assert config == RelayConfig()
    assert config.format_selector == "mp4[filesize<1000M]/mp4/best"
    assert config.video_extensions == (".mp4", ".m4v", ".mov")
    assert config.scratch_root


def test_values_from_environment() -> None:
    config = load_config(
        {
            "BOT_TOKEN": " 123:abc ",
            "PORT": "9000",
            "MAX_FILESIZE_MB": "45",
            "TEMP_ROOT": "/var/tmp/relay",
        }
    )
    assert config.bot_token == "123:abc"
    assert config.health_port == 9000
    assert config.format_selector == "mp4[filesize<45M]/mp4/best"
    assert config.scratch_root == "/var/tmp/relay"


def test_invalid_integer_is_reported() -> None:
    with pytest.raises(ValueError, match="PORT"):
        load_config({"PORT": "eighty"})
