"""
Database properties source.

Reads the ``key=value`` properties file that switches separate DB storage on.
A missing file, or a file without a single entry, is the documented
"persistence off" signal and is not an error.

Recognized keys
---------------
- jdbc.url                   connection string (JDBC-style or SQLAlchemy URL)
- user                       database user
- password                   database password
- connection.timeout.millis  connection acquisition timeout in milliseconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values

from iot_persistence.core.logging.logger import get_logger

logger = get_logger(__name__)

JDBC_URL_KEY = "jdbc.url"
USER_KEY = "user"
PASSWORD_KEY = "password"
CONNECTION_TIMEOUT_KEY = "connection.timeout.millis"


@dataclass(frozen=True)
class DatabaseProperties:
    """Immutable view over the loaded properties source."""

    source: str
    values: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, filename: Union[str, Path]) -> DatabaseProperties:
        """
        Load properties from ``filename``.

        Relative names are resolved against the current working directory.
        Entries without a value are skipped. A missing, unreadable or
        undecodable file yields an empty source; this never raises.
        """
        path = Path(filename).expanduser()
        if not path.is_file():
            logger.debug(
                "Properties source not found",
                extra={"source": str(path)},
            )
            return cls(source=str(path))

        try:
            raw = dotenv_values(path, interpolate=False, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "Properties source could not be read; treating it as empty",
                extra={
                    "source": str(path),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return cls(source=str(path))

        values: Dict[str, str] = {
            key.strip(): value.strip()
            for key, value in raw.items()
            if key and value is not None
        }

        logger.debug(
            "Properties source loaded",
            extra={"source": str(path), "keys": sorted(values)},
        )
        return cls(source=str(path), values=values)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def is_empty(self) -> bool:
        return not self.values

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.values.get(key)
        return value if value else default

    def get_int(self, key: str, default: int) -> int:
        """Parse an integer property, warning and falling back on bad input."""
        raw_value = self.values.get(key)
        if raw_value is None or raw_value == "":
            return default

        try:
            return int(raw_value)
        except ValueError:
            logger.warning(
                f"{key}='{raw_value}' is not a valid integer, using default {default}",
                extra={"source": self.source, "key": key},
            )
            return default

    @property
    def jdbc_url(self) -> Optional[str]:
        return self.get(JDBC_URL_KEY)

    @property
    def user(self) -> Optional[str]:
        return self.get(USER_KEY)

    @property
    def password(self) -> Optional[str]:
        return self.get(PASSWORD_KEY)

    def connection_timeout_ms(self, default: int) -> int:
        return self.get_int(CONNECTION_TIMEOUT_KEY, default)
