"""Core modules for the support relay."""

from .config import config_loader, get_config, get_settings
from .errors import (
    RelayError,
    AuthFailure,
    ValidationFailure,
    ProtocolFailure,
    PersistenceFailure,
    ConnectionClosedError,
)

__all__ = [
    'config_loader',
    'get_config',
    'get_settings',
    'RelayError',
    'AuthFailure',
    'ValidationFailure',
    'ProtocolFailure',
    'PersistenceFailure',
    'ConnectionClosedError',
]
