"""Configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class CatalogConfig:
    """Settings for the catalog service."""
    store_backend: str = 'dynamodb'
    table_name: str = 'events'
    registrations_table_name: str = 'registrations'
    rest_url: Optional[str] = None
    rest_api_key: Optional[str] = None
    poll_interval_seconds: float = 5.0
    timeout_seconds: int = 30
    log_level: str = 'INFO'


def load_config(environ: Optional[Mapping[str, str]] = None) -> CatalogConfig:
    """
    Build the configuration from environment variables.

    Args:
        environ: Variables to read (default: os.environ)

    Returns:
        CatalogConfig with defaults for unset variables

    Raises:
        ValueError: If a variable holds an invalid value
    """
    env = os.environ if environ is None else environ

    config = CatalogConfig(
        store_backend=env.get('STORE_BACKEND', 'dynamodb').lower(),
        table_name=env.get('TABLE_NAME', 'events'),
        registrations_table_name=env.get('REGISTRATIONS_TABLE_NAME', 'registrations'),
        rest_url=env.get('REST_URL') or None,
        rest_api_key=env.get('REST_API_KEY') or None,
        poll_interval_seconds=float(env.get('POLL_INTERVAL_SECONDS', '5')),
        timeout_seconds=int(env.get('TIMEOUT_SECONDS', '30')),
        log_level=env.get('LOG_LEVEL', 'INFO')
    )

    if config.store_backend not in ('dynamodb', 'rest'):
        raise ValueError(f"Unknown STORE_BACKEND: {config.store_backend}")
    if config.store_backend == 'rest' and not (config.rest_url and config.rest_api_key):
        raise ValueError('REST_URL and REST_API_KEY are required for the rest backend')
    if config.poll_interval_seconds <= 0:
        raise ValueError('POLL_INTERVAL_SECONDS must be positive')

    return config
