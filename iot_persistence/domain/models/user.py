"""
User domain model.

The persistence layer forwards users as opaque payloads; this is only the
shape it needs to write a row. Identity is ``(email, app_name)``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

DEFAULT_APP_NAME = "Blynk"
DEFAULT_REGION = "local"


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class User:
    email: str
    app_name: str = DEFAULT_APP_NAME
    region: str = DEFAULT_REGION
    name: str = ""
    energy: int = 0
    is_facebook_user: bool = False
    is_super_admin: bool = False
    last_modified_ts: int = field(default_factory=_now_millis)
    profile: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.email:
            raise ValueError("User email must be a non-empty string")
        if not self.name:
            self.name = self.email

    @property
    def identity(self) -> Tuple[str, str]:
        return self.email, self.app_name
