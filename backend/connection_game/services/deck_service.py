"""Deck service for DynamoDB operations."""

import os
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.exceptions import ClientError


class DeckServiceError(Exception):
    """Base exception for deck service errors."""

    pass


class DeckNotFoundError(DeckServiceError):
    """Raised when deck is not found."""

    pass


class DeckService:
    """Service for the deck aggregates touched by card generation."""

    def __init__(
        self,
        table_name: Optional[str] = None,
        dynamodb_resource=None,
    ):
        """Initialize DeckService.

        Args:
            table_name: DynamoDB table name. Defaults to DECKS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.table_name = table_name or os.environ.get("DECKS_TABLE", "connection-game-decks-dev")

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.table = self.dynamodb.Table(self.table_name)

    def update_card_count(self, deck_id: str, total: int, free: int, premium: int) -> None:
        """Overwrite a deck's card count aggregate.

        Raises:
            DeckNotFoundError: If deck does not exist.
            DeckServiceError: If the update fails.
        """
        try:
            self.table.update_item(
                Key={"deck_id": deck_id},
                UpdateExpression="SET card_count = :card_count, updated_at = :updated_at",
                ConditionExpression="attribute_exists(deck_id)",
                ExpressionAttributeValues={
                    ":card_count": {"total": total, "free": free, "premium": premium},
                    ":updated_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DeckNotFoundError(f"Deck not found: {deck_id}")
            raise DeckServiceError(f"Failed to update deck card count: {e}")
