"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import json

from dotenv import find_dotenv, load_dotenv

from .transfer.protocol import BYTE_ORDERS, CHUNK_SIZE


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Config:
    """
    Transfer configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (TCPDROP_*)
    2. Config file (JSON)
    3. Default values
    """
    # Listener
    host: str = '0.0.0.0'
    port: int = 0  # 0 = OS-assigned
    advertise_host: Optional[str] = None
    accept_timeout: Optional[float] = None

    # Receiver
    destination: Path = field(default_factory=lambda: Path('received_file'))
    verify_size: bool = False

    # Sender
    connect_timeout: float = 10.0
    allow_hostnames: bool = False

    # Wire
    chunk_size: int = CHUNK_SIZE
    byte_order: str = 'native'

    # Logging
    log_level: str = 'INFO'

    def validate(self):
        """Raise ValueError on settings the transfer code cannot use."""
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.byte_order not in BYTE_ORDERS:
            raise ValueError(
                f"byte_order must be one of {sorted(BYTE_ORDERS)}, got {self.byte_order!r}"
            )
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.connect_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {self.connect_timeout}")

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        config = cls()

        # Listener
        config.host = os.getenv('TCPDROP_HOST', config.host)
        config.port = int(os.getenv('TCPDROP_PORT', config.port))
        config.advertise_host = os.getenv('TCPDROP_ADVERTISE_HOST') or None
        accept_timeout = os.getenv('TCPDROP_ACCEPT_TIMEOUT')
        if accept_timeout:
            config.accept_timeout = float(accept_timeout)

        # Receiver
        destination = os.getenv('TCPDROP_DESTINATION')
        if destination:
            config.destination = Path(destination)
        config.verify_size = _env_bool('TCPDROP_VERIFY_SIZE', config.verify_size)

        # Sender
        config.connect_timeout = float(
            os.getenv('TCPDROP_CONNECT_TIMEOUT', config.connect_timeout)
        )
        config.allow_hostnames = _env_bool('TCPDROP_ALLOW_HOSTNAMES', config.allow_hostnames)

        # Wire
        config.chunk_size = int(os.getenv('TCPDROP_CHUNK_SIZE', config.chunk_size))
        config.byte_order = os.getenv('TCPDROP_BYTE_ORDER', config.byte_order)

        # Logging
        config.log_level = os.getenv('TCPDROP_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Listener
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.advertise_host = data.get('advertise_host', config.advertise_host)
        config.accept_timeout = data.get('accept_timeout', config.accept_timeout)

        # Receiver
        if 'destination' in data:
            config.destination = Path(data['destination'])
        config.verify_size = data.get('verify_size', config.verify_size)

        # Sender
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)
        config.allow_hostnames = data.get('allow_hostnames', config.allow_hostnames)

        # Wire
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.byte_order = data.get('byte_order', config.byte_order)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'advertise_host': self.advertise_host,
            'accept_timeout': self.accept_timeout,
            'destination': str(self.destination),
            'verify_size': self.verify_size,
            'connect_timeout': self.connect_timeout,
            'allow_hostnames': self.allow_hostnames,
            'chunk_size': self.chunk_size,
            'byte_order': self.byte_order,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


# Config fields that can be set through TCPDROP_<FIELD>
_ENV_KEYS = [
    'host', 'port', 'advertise_host', 'accept_timeout', 'destination',
    'verify_size', 'connect_timeout', 'allow_hostnames', 'chunk_size',
    'byte_order', 'log_level',
]


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables that are actually set
    env_config = Config.from_env()
    for key in _ENV_KEYS:
        if os.getenv(f'TCPDROP_{key.upper()}'):
            setattr(config, key, getattr(env_config, key))

    config.validate()
    return config
