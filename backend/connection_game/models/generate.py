"""Card generation models for the Connection Game backend."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .card import Card, RelationshipType


class ModelTier(str, Enum):
    """Generation model tier selected from the quality coefficient."""

    STANDARD = "standard"
    HIGH = "high"


class GenerateCardsRequest(BaseModel):
    """Request model for AI card generation."""

    relationship_type: RelationshipType = Field(
        ...,
        description="Relationship the cards are written for",
    )
    connection_level: int = Field(
        ...,
        ge=1,
        le=4,
        description="Interaction depth from surface (1) to deep (4)",
    )
    count: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of cards to generate",
    )
    theta: float = Field(
        default=0.5,
        ge=0.1,
        le=1.0,
        description="Quality coefficient controlling model and creativity",
    )
    target_languages: List[str] = Field(
        default_factory=lambda: ["en"],
        min_length=1,
        description="Language codes the cards are written in",
    )
    deck_id: Optional[str] = Field(None, description="Optional deck to attach cards to")
    requesting_user_id: Optional[str] = None

    @field_validator("target_languages")
    @classmethod
    def validate_target_languages(cls, v: List[str]) -> List[str]:
        """Normalize language codes and drop duplicates, keeping order."""
        languages = []
        for code in v:
            code = code.strip().lower()
            if not code.isalpha() or not 2 <= len(code) <= 3:
                raise ValueError(f"Invalid language code: {code!r}")
            if code not in languages:
                languages.append(code)
        if not languages:
            raise ValueError("At least one target language is required")
        return languages


class CostEstimate(BaseModel):
    """Estimated token usage and USD cost of a generation request."""

    estimated: bool = True
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    total_cost: float
    model_tier: ModelTier


class BatchResult(BaseModel):
    """Outcome of one batch within a generation run."""

    batch_index: int
    requested: int
    returned: int = 0
    accepted: int = 0
    duplicates: int = 0
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failure_reason is None


class GenerationSummary(BaseModel):
    """Result returned to the caller of a generation run."""

    success: bool = True
    generated_count: int
    requested_count: int
    duplicates_detected: int
    theta: float
    model_tier: ModelTier
    estimated_cost: CostEstimate
    cancelled: bool = False
    batches: List[BatchResult] = Field(default_factory=list)
    cards: List[Card] = Field(default_factory=list)
