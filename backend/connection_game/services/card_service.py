"""Card service for DynamoDB operations."""

import operator
import os
from datetime import datetime, timezone
from functools import reduce
from typing import List, Optional

import boto3
from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from ..models.card import Card, CardStatus, RelationshipType

logger = Logger()


class CardServiceError(Exception):
    """Base exception for card service errors."""

    pass


class CardService:
    """Service for card-related DynamoDB operations."""

    def __init__(
        self,
        table_name: Optional[str] = None,
        dynamodb_resource=None,
    ):
        """Initialize CardService.

        Args:
            table_name: DynamoDB table name. Defaults to CARDS_TABLE env var.
            dynamodb_resource: Optional boto3 DynamoDB resource for testing.
        """
        self.table_name = table_name or os.environ.get("CARDS_TABLE", "connection-game-cards-dev")

        if dynamodb_resource:
            self.dynamodb = dynamodb_resource
        else:
            endpoint_url = os.environ.get("AWS_ENDPOINT_URL")
            if endpoint_url:
                self.dynamodb = boto3.resource("dynamodb", endpoint_url=endpoint_url)
            else:
                self.dynamodb = boto3.resource("dynamodb")

        self.table = self.dynamodb.Table(self.table_name)

    def create_card(self, card: Card) -> Card:
        """Persist a new card.

        Args:
            card: Card to store. Timestamps are set on write.

        Returns:
            Stored Card object.

        Raises:
            CardServiceError: If the card already exists or the write fails.
        """
        now = datetime.now(timezone.utc)
        card = card.model_copy(update={"created_at": now, "updated_at": now})

        try:
            self.table.put_item(
                Item=card.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(card_id)",
            )
            return card
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise CardServiceError(f"Card already exists: {card.card_id}")
            logger.error(f"Failed to put card {card.card_id}: {e}")
            raise CardServiceError(f"Failed to create card: {e}")

    def find_by_filters(
        self,
        relationship_types: Optional[List[RelationshipType]] = None,
        connection_level: Optional[int] = None,
        status: Optional[CardStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Card]:
        """Find cards matching all given filters, newest first.

        Args:
            relationship_types: Cards must target at least one of these.
            connection_level: Exact connection level.
            status: Exact lifecycle status.
            limit: Keep only the ``limit`` most recently created cards.

        Returns:
            List of matching cards ordered by created_at descending.
        """
        conditions = []
        if relationship_types:
            conditions.append(reduce(operator.or_, [
                Attr("relationship_types").contains(RelationshipType(r).value)
                for r in relationship_types
            ]))
        if connection_level is not None:
            conditions.append(Attr("connection_level").eq(connection_level))
        if status is not None:
            conditions.append(Attr("status").eq(CardStatus(status).value))

        filter_expression = reduce(operator.and_, conditions) if conditions else None
        cards = [Card.from_dynamodb_item(item) for item in self._scan(filter_expression)]
        cards.sort(key=lambda card: card.created_at, reverse=True)
        if limit is not None:
            cards = cards[:limit]
        return cards

    def find_by_deck_id(self, deck_id: str) -> List[Card]:
        """Find all cards attached to a deck."""
        items = self._scan(Attr("deck_ids").contains(deck_id))
        return [Card.from_dynamodb_item(item) for item in items]

    def _scan(self, filter_expression=None) -> List[dict]:
        scan_kwargs = {}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression

        items = []
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            raise CardServiceError(f"Failed to query cards: {e}")
        return items
