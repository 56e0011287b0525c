from pathlib import Path

import pytest

from makerspace_dash import constants
from makerspace_dash.config import load_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "makerspace-dash.cfg", environ={})

    assert config.server.host == constants.DEFAULT_SERVER_HOST
    assert config.server.port == constants.DEFAULT_SERVER_PORT
    assert config.bambu.api_base_url == "https://api.bambulab.com"
    assert config.bambu.mqtt_host == "us.mqtt.bambulab.com"
    assert config.bambu.mqtt_port == 8883
    assert config.bambu.email is None
    assert config.bambu.push_enabled is True
    assert config.supabase.url is None
    assert config.supabase.emptying_table == "printer_emptying_state"
    assert config.supabase.descriptions_table == "print_job_descriptions"
    assert config.tracker.store_backend == "supabase"
    assert config.tracker.refresh_interval_seconds == 60.0
    assert config.tracker.telemetry_timeout_seconds == 20.0
    assert config.tracker.storage_timeout_seconds == 10.0
    assert config.logging.level == "INFO"
    assert config.logging.path is None


def test_load_config_reads_file(tmp_path: Path) -> None:
    config_path = tmp_path / "makerspace-dash.cfg"
    config_path.write_text(
        """
[server]
host = 0.0.0.0
port = 9000

[bambu]
email = maker@example.org
push_enabled = false
push_window_seconds = 0

[supabase]
url = https://project.supabase.co/
anon_key = anon

[tracker]
store_backend = Memory
refresh_interval_seconds = 0
storage_timeout_seconds = 0.2

[logging]
level = DEBUG
path = ~/dash.log
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})

    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9000
    assert config.bambu.email == "maker@example.org"
    assert config.bambu.push_enabled is False
    assert config.bambu.push_window_seconds == 0.1
    assert config.supabase.url == "https://project.supabase.co"
    assert config.tracker.store_backend == "memory"
    assert config.tracker.refresh_interval_seconds == 0.0
    assert config.tracker.storage_timeout_seconds == 1.0
    assert config.logging.level == "DEBUG"
    assert config.logging.path == Path("~/dash.log").expanduser()
    assert config.path == config_path


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_path = tmp_path / "makerspace-dash.cfg"
    config_path.write_text("[bambu]\nemail = file@example.org\n", encoding="utf-8")

    config = load_config(
        config_path,
        environ={
            "BAMBULAB_EMAIL": "env@example.org",
            "BAMBULAB_ACCESS_TOKEN": "static-token",
            "BAMBULAB_PASSWORD": "",
            "SUPABASE_URL": "https://env.supabase.co",
            "SUPABASE_ANON_KEY": "anon",
            "SUPABASE_SERVICE_ROLE_KEY": "service",
        },
    )

    assert config.bambu.email == "env@example.org"
    assert config.bambu.access_token == "static-token"
    assert config.bambu.password is None
    assert config.supabase.url == "https://env.supabase.co"
    assert config.supabase.service_key == "service"
    assert config.raw.get("bambu", "email") == "env@example.org"


def test_unknown_store_backend_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "makerspace-dash.cfg"
    config_path.write_text("[tracker]\nstore_backend = redis\n", encoding="utf-8")

    with pytest.raises(ValueError, match="store_backend"):
        load_config(config_path, environ={})
