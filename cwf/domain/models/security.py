from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SecurityLevel(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def max(self, other: "SecurityLevel") -> "SecurityLevel":
        """Return the stricter of two levels."""
        return self if self.rank >= other.rank else other


_RANKS = {
    SecurityLevel.PUBLIC: 0,
    SecurityLevel.INTERNAL: 1,
    SecurityLevel.CONFIDENTIAL: 2,
    SecurityLevel.RESTRICTED: 3,
}


class SecurityClassification(BaseModel):
    """Classification of one piece of text. Computed per turn, never cached."""

    model_config = ConfigDict(frozen=True)

    level: SecurityLevel
    pii_detected: bool = False
    tags: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def must_drop(self) -> bool:
        """Snippets with this classification may not reach a prompt at all."""
        return self.level == SecurityLevel.RESTRICTED or self.pii_detected
