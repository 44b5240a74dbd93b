"""
Configuration for the persistence layer.

- ``Config``: static settings read from the environment (.env aware)
- ``DatabaseProperties`` (in ``.properties``): the source that enables DB storage
"""

from iot_persistence.core.config.config import Config, Environment

__all__ = [
    "Config",
    "Environment",
]
