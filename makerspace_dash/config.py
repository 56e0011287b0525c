"""Configuration loader for makerspace-dash."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import constants

STORE_BACKENDS = ("supabase", "memory")

# Environment variable -> (section, option). Values found in the environment
# take precedence over the configuration file.
ENVIRONMENT_OVERRIDES: dict[str, tuple[str, str]] = {
    "BAMBULAB_EMAIL": ("bambu", "email"),
    "BAMBULAB_PASSWORD": ("bambu", "password"),
    "BAMBULAB_VERIFICATION_CODE": ("bambu", "verification_code"),
    "BAMBULAB_ACCESS_TOKEN": ("bambu", "access_token"),
    "BAMBULAB_UID": ("bambu", "uid"),
    "BAMBULAB_MQTT_HOST": ("bambu", "mqtt_host"),
    "SUPABASE_URL": ("supabase", "url"),
    "SUPABASE_ANON_KEY": ("supabase", "anon_key"),
    "SUPABASE_SERVICE_ROLE_KEY": ("supabase", "service_key"),
}


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_SERVER_HOST
    port: int = constants.DEFAULT_SERVER_PORT


@dataclass(slots=True)
class BambuConfig:
    api_base_url: str = constants.DEFAULT_BAMBU_API_BASE
    email: Optional[str] = None
    password: Optional[str] = None
    verification_code: Optional[str] = None
    access_token: Optional[str] = None  # Static token, skips the login flow
    uid: Optional[str] = None
    mqtt_host: str = constants.DEFAULT_BAMBU_MQTT_HOST
    mqtt_port: int = constants.DEFAULT_BAMBU_MQTT_PORT
    push_enabled: bool = True
    push_window_seconds: float = 3.0
    metadata_ttl_seconds: float = 300.0
    request_timeout_seconds: float = 15.0


@dataclass(slots=True)
class SupabaseConfig:
    url: Optional[str] = None
    anon_key: Optional[str] = None
    service_key: Optional[str] = None  # Used for table access when set
    emptying_table: str = constants.DEFAULT_EMPTYING_TABLE
    descriptions_table: str = constants.DEFAULT_DESCRIPTIONS_TABLE


@dataclass(slots=True)
class TrackerConfig:
    store_backend: str = "supabase"
    refresh_interval_seconds: float = 60.0  # 0 disables the in-process refresher
    telemetry_timeout_seconds: float = 20.0
    storage_timeout_seconds: float = 10.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class DashConfig:
    server: ServerConfig
    bambu: BambuConfig
    supabase: SupabaseConfig
    tracker: TrackerConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _optional(parser: ConfigParser, section: str, option: str) -> Optional[str]:
    value = parser.get(section, option, fallback="").strip()
    return value or None


def _apply_environment(parser: ConfigParser, environ: Mapping[str, str]) -> None:
    for name, (section, option) in ENVIRONMENT_OVERRIDES.items():
        value = environ.get(name)
        if value:
            parser.set(section, option, value)


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> DashConfig:
    """Load configuration from disk, applying defaults and environment overrides."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "server": {
                "host": constants.DEFAULT_SERVER_HOST,
                "port": str(constants.DEFAULT_SERVER_PORT),
            },
            "bambu": {
                "api_base_url": constants.DEFAULT_BAMBU_API_BASE,
                "email": "",
                "password": "",
                "verification_code": "",
                "access_token": "",
                "uid": "",
                "mqtt_host": constants.DEFAULT_BAMBU_MQTT_HOST,
                "mqtt_port": str(constants.DEFAULT_BAMBU_MQTT_PORT),
                "push_enabled": "true",
                "push_window_seconds": "3.0",
                "metadata_ttl_seconds": "300",
                "request_timeout_seconds": "15.0",
            },
            "supabase": {
                "url": "",
                "anon_key": "",
                "service_key": "",
                "emptying_table": constants.DEFAULT_EMPTYING_TABLE,
                "descriptions_table": constants.DEFAULT_DESCRIPTIONS_TABLE,
            },
            "tracker": {
                "store_backend": "supabase",
                "refresh_interval_seconds": "60",
                "telemetry_timeout_seconds": "20",
                "storage_timeout_seconds": "10",
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    _apply_environment(parser, os.environ if environ is None else environ)

    server = ServerConfig(
        host=parser.get("server", "host"),
        port=parser.getint("server", "port", fallback=constants.DEFAULT_SERVER_PORT),
    )

    bambu = BambuConfig(
        api_base_url=parser.get("bambu", "api_base_url").rstrip("/"),
        email=_optional(parser, "bambu", "email"),
        password=_optional(parser, "bambu", "password"),
        verification_code=_optional(parser, "bambu", "verification_code"),
        access_token=_optional(parser, "bambu", "access_token"),
        uid=_optional(parser, "bambu", "uid"),
        mqtt_host=parser.get("bambu", "mqtt_host"),
        mqtt_port=parser.getint(
            "bambu", "mqtt_port", fallback=constants.DEFAULT_BAMBU_MQTT_PORT
        ),
        push_enabled=parser.getboolean("bambu", "push_enabled", fallback=True),
        push_window_seconds=max(
            0.1, parser.getfloat("bambu", "push_window_seconds", fallback=3.0)
        ),
        metadata_ttl_seconds=max(
            0.0, parser.getfloat("bambu", "metadata_ttl_seconds", fallback=300.0)
        ),
        request_timeout_seconds=max(
            1.0, parser.getfloat("bambu", "request_timeout_seconds", fallback=15.0)
        ),
    )

    supabase_url = _optional(parser, "supabase", "url")
    supabase = SupabaseConfig(
        url=supabase_url.rstrip("/") if supabase_url else None,
        anon_key=_optional(parser, "supabase", "anon_key"),
        service_key=_optional(parser, "supabase", "service_key"),
        emptying_table=parser.get("supabase", "emptying_table"),
        descriptions_table=parser.get("supabase", "descriptions_table"),
    )

    store_backend = parser.get("tracker", "store_backend").strip().lower()
    if store_backend not in STORE_BACKENDS:
        raise ValueError(
            f"Unsupported store_backend {store_backend!r}; expected one of {', '.join(STORE_BACKENDS)}"
        )

    tracker = TrackerConfig(
        store_backend=store_backend,
        refresh_interval_seconds=max(
            0.0, parser.getfloat("tracker", "refresh_interval_seconds", fallback=60.0)
        ),
        telemetry_timeout_seconds=max(
            1.0, parser.getfloat("tracker", "telemetry_timeout_seconds", fallback=20.0)
        ),
        storage_timeout_seconds=max(
            1.0, parser.getfloat("tracker", "storage_timeout_seconds", fallback=10.0)
        ),
    )

    log_path_value = _optional(parser, "logging", "path")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return DashConfig(
        server=server,
        bambu=bambu,
        supabase=supabase,
        tracker=tracker,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )

