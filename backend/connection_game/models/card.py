"""Card models for the Connection Game backend."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class RelationshipType(str, Enum):
    """Relationship a card is written for."""

    FRIENDS = "friends"
    COLLEAGUES = "colleagues"
    NEW_COUPLES = "new_couples"
    ESTABLISHED_COUPLES = "established_couples"
    FAMILY = "family"


class CardType(str, Enum):
    """Kind of card drawn during a game."""

    QUESTION = "question"
    CHALLENGE = "challenge"
    SCENARIO = "scenario"
    CONNECTION = "connection"
    WILD = "wild"


class CardTier(str, Enum):
    """Monetization tier of a card."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"


class CardStatus(str, Enum):
    """Lifecycle status of a card."""

    ACTIVE = "active"
    REVIEW = "review"
    ARCHIVED = "archived"


AI_GENERATION = "ai_generation"

CONTENT_MIN_LENGTH = 10
CONTENT_MAX_LENGTH = 500


class CardStatistics(BaseModel):
    """Usage statistics of a card."""

    times_drawn: int = Field(default=0, ge=0)
    skip_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    average_rating: Optional[float] = Field(default=None, ge=1.0, le=5.0)
    language_usage: Dict[str, int] = Field(default_factory=dict)


class Card(BaseModel):
    """Card domain model."""

    card_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: Dict[str, str]
    type: CardType
    connection_level: int = Field(..., ge=1, le=4)
    relationship_types: List[RelationshipType] = Field(..., min_length=1)
    deck_ids: List[str] = Field(default_factory=list)
    tier: CardTier = CardTier.FREE
    theta: float = Field(default=0.5, ge=0.1, le=1.0)
    categories: List[str] = Field(default_factory=list)
    content_warnings: List[str] = Field(default_factory=list)
    statistics: CardStatistics = Field(default_factory=CardStatistics)
    status: CardStatus = CardStatus.REVIEW
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate multilingual content entries."""
        if not v:
            raise ValueError("Content must have at least one language entry")
        cleaned = {}
        for language, text in v.items():
            text = text.strip()
            if not CONTENT_MIN_LENGTH <= len(text) <= CONTENT_MAX_LENGTH:
                raise ValueError(
                    f"Content for '{language}' must be between "
                    f"{CONTENT_MIN_LENGTH} and {CONTENT_MAX_LENGTH} characters"
                )
            cleaned[language] = text
        return cleaned

    def primary_text(self, language: str = "en") -> str:
        """Return the content used for duplicate comparison.

        Falls back to the first available language when ``language`` is missing.
        """
        if language in self.content:
            return self.content[language]
        return next(iter(self.content.values()), "")

    def to_dynamodb_item(self) -> dict:
        """Convert to DynamoDB item."""
        statistics = {
            "times_drawn": self.statistics.times_drawn,
            "skip_rate": str(self.statistics.skip_rate),  # DynamoDB doesn't support float directly
            "language_usage": self.statistics.language_usage,
        }
        if self.statistics.average_rating is not None:
            statistics["average_rating"] = str(self.statistics.average_rating)

        item = {
            "card_id": self.card_id,
            "content": self.content,
            "type": self.type.value,
            "connection_level": self.connection_level,
            "relationship_types": [r.value for r in self.relationship_types],
            "deck_ids": self.deck_ids,
            "tier": self.tier.value,
            "theta": str(self.theta),
            "categories": self.categories,
            "content_warnings": self.content_warnings,
            "statistics": statistics,
            "status": self.status.value,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }
        if self.updated_at:
            item["updated_at"] = self.updated_at.isoformat()
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict) -> "Card":
        """Create Card from DynamoDB item."""
        stats = item.get("statistics", {})
        return cls(
            card_id=item["card_id"],
            content=dict(item["content"]),
            type=item["type"],
            connection_level=int(item["connection_level"]),
            relationship_types=list(item["relationship_types"]),
            deck_ids=list(item.get("deck_ids", [])),
            tier=item.get("tier", CardTier.FREE.value),
            theta=float(item.get("theta", 0.5)),
            categories=list(item.get("categories", [])),
            content_warnings=list(item.get("content_warnings", [])),
            statistics=CardStatistics(
                times_drawn=int(stats.get("times_drawn", 0)),
                skip_rate=float(stats.get("skip_rate", 0)),
                average_rating=float(stats["average_rating"]) if stats.get("average_rating") else None,
                language_usage={k: int(v) for k, v in stats.get("language_usage", {}).items()},
            ),
            status=item.get("status", CardStatus.REVIEW.value),
            created_by=item["created_by"],
            created_at=datetime.fromisoformat(item["created_at"]),
            updated_at=datetime.fromisoformat(item["updated_at"]) if item.get("updated_at") else None,
        )
