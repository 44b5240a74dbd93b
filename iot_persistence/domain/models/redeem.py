"""
Redeem domain model.

A single-use promotional code issued by a partner company. Created
unredeemed at version 1, redeemed exactly once, never deleted.

Invariants
----------
- ``token`` is non-empty (uniqueness is enforced by the store).
- ``is_redeemed`` implies a non-empty ``username``.
- ``version`` starts at 1 and grows by exactly one per update.
- ``reward`` is non-negative.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class Redeem:
    """Value object for a promotional reward token."""

    token: str
    company: str
    reward: int = 0
    is_redeemed: bool = False
    username: Optional[str] = None
    version: int = 1

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("Redeem token must be a non-empty string")
        if self.reward < 0:
            raise ValueError(f"Redeem reward must be non-negative, got {self.reward}")
        if self.version < 1:
            raise ValueError(f"Redeem version must be >= 1, got {self.version}")
        if self.is_redeemed and not self.username:
            raise ValueError("A redeemed token must carry the redeeming username")

    @classmethod
    def issue(cls, token: str, company: str, reward: int) -> Redeem:
        """Create a fresh, unredeemed token."""
        return cls(token=token, company=company, reward=reward)

    def redeemed_by(self, username: str) -> Redeem:
        """
        Return the state of this token after ``username`` redeems it.

        Raises ``ValueError`` if the token is already redeemed; the store-side
        equivalent is the conditional update in ``RedeemDao.update``.
        """
        if self.is_redeemed:
            raise ValueError(f"Token {self.token!r} is already redeemed")
        return replace(
            self,
            is_redeemed=True,
            username=username,
            version=self.version + 1,
        )
