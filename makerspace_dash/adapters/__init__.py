"""Adapters for the external services behind the dashboard."""

from .bambu import BambuCloudClient, PrinterMetadata
from .mqtt import MQTTClient, MQTTConnectionError
from .push import PushStatusCollector
from .supabase import SupabaseClient

__all__ = [
    "BambuCloudClient",
    "MQTTClient",
    "MQTTConnectionError",
    "PrinterMetadata",
    "PushStatusCollector",
    "SupabaseClient",
]
