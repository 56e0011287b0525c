"""Constants used across the makerspace-dash package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "makerspace-dash"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 8080

DEFAULT_BAMBU_API_BASE = "https://api.bambulab.com"
DEFAULT_BAMBU_MQTT_HOST = "us.mqtt.bambulab.com"
DEFAULT_BAMBU_MQTT_PORT = 8883

DEFAULT_EMPTYING_TABLE = "printer_emptying_state"
DEFAULT_DESCRIPTIONS_TABLE = "print_job_descriptions"

SESSION_COOKIE_NAME = "sb-access-token"

DEFAULT_JOB_LIMIT = 20
