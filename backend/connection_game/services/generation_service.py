"""AI card generation with duplicate prevention and cost control."""

import json
import math
import os
import random
import re
import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple, Union

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from ..models.card import (
    AI_GENERATION,
    Card,
    CardStatistics,
    CardStatus,
    CardTier,
    RelationshipType,
)
from ..models.generate import BatchResult, GenerateCardsRequest, GenerationSummary, ModelTier
from .bedrock import BedrockRateLimitError, BedrockService, BedrockServiceError, GenerationConfig
from .card_service import CardService, CardServiceError
from .cost import estimate_generation_cost
from .deck_service import DeckService, DeckServiceError
from .prompts import get_card_generation_prompt, get_model_tier
from .similarity import ContentHashCache, SimilarityDetector

logger = Logger()


class GenerationServiceError(Exception):
    """Base exception for generation service errors."""

    pass


class GenerationValidationError(GenerationServiceError):
    """Raised when a generation request is malformed. Nothing has been called."""

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class GenerationParseError(GenerationServiceError):
    """Raised when a model response does not match the card schema."""

    pass


class GenerationFailedError(GenerationServiceError):
    """Raised when no batch of a generation run succeeded."""

    pass


class GenerationRateLimitError(GenerationFailedError):
    """Raised when a run failed because the model was throttled."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class GenerationCancelledError(GenerationServiceError):
    """Raised when a run is cancelled before any batch ran."""

    pass


DEFAULT_BATCH_SIZE = 10

MAX_OUTPUT_TOKENS = {
    ModelTier.STANDARD: 2048,
    ModelTier.HIGH: 4096,
}

# Pause between batches, in seconds, plus up to BATCH_DELAY_JITTER
BATCH_DELAY = {
    ModelTier.STANDARD: 1.0,
    ModelTier.HIGH: 2.0,
}
BATCH_DELAY_JITTER = 1.0

RATE_LIMIT_BASE_DELAY = 1.0
RATE_LIMIT_RETRY_BUDGET = 3

_JSON_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def get_generation_config(theta: float) -> GenerationConfig:
    """Map the quality coefficient onto model sampling parameters."""
    model_tier = get_model_tier(theta)
    return GenerationConfig(
        temperature=min(0.9, theta * 1.2),
        top_p=max(0.8, 1 - theta * 0.2),
        max_output_tokens=MAX_OUTPUT_TOKENS[model_tier],
        model_tier=model_tier,
    )


def get_rate_limit_backoff(
    base_delay: float = RATE_LIMIT_BASE_DELAY,
    retry_budget: int = RATE_LIMIT_RETRY_BUDGET,
) -> float:
    """Seconds to wait after a rate-limit signal: base_delay * 2^retry_budget."""
    return base_delay * 2 ** retry_budget


def get_comparison_language(target_languages: Sequence[str]) -> str:
    """Language whose text is compared for duplicates."""
    return "en" if "en" in target_languages else target_languages[0]


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v and str(v).strip()]


def _build_card(card_data: dict, request: GenerateCardsRequest) -> Card:
    content = card_data.get("content")
    if isinstance(content, str):
        content = {request.target_languages[0]: content}
    if not isinstance(content, dict):
        raise ValueError("Card content missing")
    content = {
        language: str(content[language])
        for language in request.target_languages
        if content.get(language)
    }

    relationship_types = [request.relationship_type]
    known_types = {r.value for r in RelationshipType}
    for value in _string_list(card_data.get("relationshipTypes")):
        if value in known_types and RelationshipType(value) not in relationship_types:
            relationship_types.append(RelationshipType(value))

    tier = card_data.get("tier")
    if tier not in (CardTier.FREE.value, CardTier.PREMIUM.value):
        tier = CardTier.PREMIUM if get_model_tier(request.theta) is ModelTier.HIGH else CardTier.FREE

    return Card(
        content=content,
        type=card_data.get("type"),
        connection_level=request.connection_level,
        relationship_types=relationship_types,
        deck_ids=[request.deck_id] if request.deck_id else [],
        tier=tier,
        theta=request.theta,
        categories=_string_list(card_data.get("categories")),
        content_warnings=_string_list(card_data.get("contentWarnings")),
        statistics=CardStatistics(language_usage={language: 0 for language in content}),
        status=CardStatus.REVIEW,
        created_by=AI_GENERATION,
    )


def parse_generated_cards(response_text: str, request: GenerateCardsRequest) -> List[Card]:
    """Parse a model response into review-status cards.

    Cards that fail validation are skipped.

    Raises:
        GenerationParseError: If no JSON object with a ``cards`` list is found,
            or none of its cards is valid.
    """
    json_match = _JSON_CODE_BLOCK.search(response_text)
    if json_match:
        json_str = json_match.group(1)
    else:
        start = response_text.find("{")
        end = response_text.rfind("}")
        if start == -1 or end <= start:
            raise GenerationParseError("No JSON found in model response")
        json_str = response_text[start:end + 1]

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Failed to parse JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("cards"), list):
        raise GenerationParseError("Response missing 'cards' field")

    cards = []
    for card_data in data["cards"]:
        if not isinstance(card_data, dict):
            continue
        try:
            cards.append(_build_card(card_data, request))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping invalid generated card: {e}")

    if not cards:
        raise GenerationParseError("No valid cards in response")
    return cards


class GenerationService:
    """Generates cards in sequential batches and filters duplicates."""

    def __init__(
        self,
        card_service: Optional[CardService] = None,
        deck_service: Optional[DeckService] = None,
        bedrock_service: Optional[BedrockService] = None,
        similarity_detector: Optional[SimilarityDetector] = None,
        batch_size: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize GenerationService.

        Args:
            card_service: Content repository. Defaults to CardService().
            deck_service: Deck repository. Defaults to DeckService().
            bedrock_service: Model client. Defaults to BedrockService().
            similarity_detector: Duplicate detector with default thresholds.
            batch_size: Maximum cards per model call. Defaults to
                GENERATION_BATCH_SIZE env var, then 10.
            sleep: Delay primitive used for pacing and backoff.
            rng: Random source for pacing jitter.
        """
        self.card_service = card_service or CardService()
        self.deck_service = deck_service or DeckService()
        self.bedrock_service = bedrock_service or BedrockService()
        self.similarity_detector = similarity_detector or SimilarityDetector()
        if batch_size is None:
            batch_size = int(os.environ.get("GENERATION_BATCH_SIZE", DEFAULT_BATCH_SIZE))
        self.batch_size = batch_size
        if self.batch_size < 1:
            raise ValueError("Batch size must be at least 1")
        self.sleep = sleep
        self.rng = rng or random.Random()

    def generate_cards(
        self,
        request: Union[GenerateCardsRequest, dict],
        cancel_event: Optional[threading.Event] = None,
    ) -> GenerationSummary:
        """Generate, de-duplicate and persist AI cards.

        Args:
            request: Generation request or its raw field mapping.
            cancel_event: When set, no further batch is started.

        Returns:
            GenerationSummary of the run. Fewer cards than requested is a
            normal outcome.

        Raises:
            GenerationValidationError: If the request is invalid.
            GenerationRateLimitError: If no batch succeeded and the model was throttled.
            GenerationFailedError: If no batch succeeded.
            GenerationCancelledError: If cancelled before the first batch.
        """
        request = self._validate(request)
        config = get_generation_config(request.theta)
        language = get_comparison_language(request.target_languages)

        # Request-scoped; concurrent runs must never share these
        hash_cache = self.load_content_hashes(request.relationship_type, request.connection_level, language)
        existing_corpus = self.load_existing_corpus(request.relationship_type, request.connection_level, language)

        batch_count = math.ceil(request.count / self.batch_size)
        accepted: List[Card] = []
        batches: List[BatchResult] = []
        retry_after = None
        cancelled = False

        for batch_index in range(batch_count):
            if batch_index > 0:
                self.sleep(self._batch_delay(config.model_tier))
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Generation cancelled before batch {batch_index + 1}/{batch_count}")
                cancelled = True
                break

            batch_size = min(self.batch_size, request.count - batch_index * self.batch_size)
            logger.info(
                f"Generating batch {batch_index + 1}/{batch_count} with {batch_size} cards",
                extra={
                    "relationship_type": request.relationship_type.value,
                    "connection_level": request.connection_level,
                    "theta": request.theta,
                    "model_tier": config.model_tier.value,
                },
            )
            result = BatchResult(batch_index=batch_index, requested=batch_size)

            try:
                cards = self._generate_batch(request, config, batch_index, batch_size)
            except BedrockRateLimitError:
                retry_after = get_rate_limit_backoff()
                logger.warning(f"Rate limit hit on batch {batch_index + 1}, waiting {retry_after}s")
                self.sleep(retry_after)
                result.failure_reason = "rate_limited"
            except (BedrockServiceError, GenerationParseError) as e:
                logger.error(f"Batch {batch_index + 1} generation failed: {e}")
                result.failure_reason = str(e)
            else:
                unique, duplicates = self._filter_duplicates(cards, hash_cache, existing_corpus, language)
                accepted.extend(unique)
                result.returned = len(cards)
                result.accepted = len(unique)
                result.duplicates = duplicates
            batches.append(result)

        if not any(batch.succeeded for batch in batches):
            if cancelled and not batches:
                raise GenerationCancelledError("Generation cancelled before any batch ran")
            if retry_after is not None:
                raise GenerationRateLimitError(
                    "Rate limit exceeded, please try again later",
                    retry_after=retry_after,
                )
            raise GenerationFailedError(f"AI generation failed: all {len(batches)} batches failed")

        created = self._persist_cards(accepted)
        if request.deck_id and created:
            self._update_deck_card_count(request.deck_id)

        summary = GenerationSummary(
            generated_count=len(created),
            requested_count=request.count,
            duplicates_detected=sum(batch.duplicates for batch in batches),
            theta=request.theta,
            model_tier=config.model_tier,
            estimated_cost=estimate_generation_cost(
                request.count, request.theta, len(request.target_languages)
            ),
            cancelled=cancelled,
            batches=batches,
            cards=created,
        )
        logger.info(
            f"Generated {summary.generated_count}/{summary.requested_count} cards",
            extra={
                "duplicates_detected": summary.duplicates_detected,
                "failed_batches": sum(1 for batch in batches if not batch.succeeded),
                "requesting_user_id": request.requesting_user_id,
            },
        )
        return summary

    def load_content_hashes(
        self,
        relationship_type: RelationshipType,
        connection_level: int,
        language: str = "en",
    ) -> ContentHashCache:
        """Build a fresh hash cache from the partition's active cards."""
        existing_cards = self.card_service.find_by_filters(
            relationship_types=[relationship_type],
            connection_level=connection_level,
            status=CardStatus.ACTIVE,
        )
        hash_cache = ContentHashCache.from_texts(card.primary_text(language) for card in existing_cards)
        logger.info(f"Loaded {len(hash_cache)} existing content hashes for duplication prevention")
        return hash_cache

    def load_existing_corpus(
        self,
        relationship_type: RelationshipType,
        connection_level: int,
        language: str = "en",
    ) -> List[str]:
        """Texts of the partition's most recent cards, for keyword overlap."""
        existing_cards = self.card_service.find_by_filters(
            relationship_types=[relationship_type],
            connection_level=connection_level,
            limit=self.similarity_detector.semantic_sample_size,
        )
        return [card.primary_text(language) for card in existing_cards]

    def _validate(self, request: Union[GenerateCardsRequest, dict]) -> GenerateCardsRequest:
        if isinstance(request, GenerateCardsRequest):
            return request
        try:
            return GenerateCardsRequest.model_validate(request)
        except ValidationError as e:
            errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
            raise GenerationValidationError("Invalid generation request", errors) from e

    def _generate_batch(
        self,
        request: GenerateCardsRequest,
        config: GenerationConfig,
        batch_index: int,
        batch_size: int,
    ) -> List[Card]:
        prompt = get_card_generation_prompt(
            relationship_type=request.relationship_type,
            connection_level=request.connection_level,
            count=batch_size,
            theta=request.theta,
            target_languages=request.target_languages,
            batch_index=batch_index,
        )
        response_text = self.bedrock_service.generate(prompt, config)
        try:
            cards = parse_generated_cards(response_text, request)
        except GenerationParseError:
            logger.debug(f"Raw model response: {response_text}")
            raise
        return cards[:batch_size]

    def _filter_duplicates(
        self,
        cards: List[Card],
        hash_cache: ContentHashCache,
        existing_corpus: Sequence[str],
        language: str,
    ) -> Tuple[List[Card], int]:
        unique: List[Card] = []
        accepted_texts: List[str] = []
        duplicates = 0

        for card in cards:
            text = card.primary_text(language)
            reason = self.similarity_detector.check(text, hash_cache, existing_corpus, accepted_texts)
            if reason is not None:
                duplicates += 1
                logger.warning(f"Duplicate detected: {reason.value} match", extra={"content": text[:50]})
                continue

            hash_cache.add(text)
            accepted_texts.append(text)
            unique.append(card)

        return unique, duplicates

    def _persist_cards(self, cards: List[Card]) -> List[Card]:
        created = []
        for card in cards:
            try:
                created.append(self.card_service.create_card(card))
            except CardServiceError as e:
                logger.error(f"Failed to persist generated card {card.card_id}: {e}")
        return created

    def _update_deck_card_count(self, deck_id: str) -> None:
        try:
            deck_cards = self.card_service.find_by_deck_id(deck_id)
            free = sum(1 for card in deck_cards if card.tier is CardTier.FREE)
            self.deck_service.update_card_count(
                deck_id,
                total=len(deck_cards),
                free=free,
                premium=len(deck_cards) - free,
            )
        except (CardServiceError, DeckServiceError) as e:
            logger.error(f"Failed to update card count for deck {deck_id}: {e}")

    def _batch_delay(self, model_tier: ModelTier) -> float:
        return BATCH_DELAY[model_tier] + self.rng.random() * BATCH_DELAY_JITTER
