"""Main API handler for the Connection Game card generation backend."""

import json

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.event_handler import APIGatewayHttpResolver, Response, content_types
from aws_lambda_powertools.event_handler.exceptions import UnauthorizedError
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError

from ..models.generate import GenerateCardsRequest
from ..services.cost import estimate_generation_cost
from ..services.generation_service import (
    GenerationCancelledError,
    GenerationFailedError,
    GenerationRateLimitError,
    GenerationService,
    GenerationValidationError,
)

logger = Logger()
tracer = Tracer()
app = APIGatewayHttpResolver()

# Initialize services
generation_service = GenerationService()


def get_user_id_from_context() -> str:
    """Extract user_id from JWT claims in request context.

    Returns:
        User ID from JWT claims.

    Raises:
        UnauthorizedError: If user_id cannot be extracted.
    """
    try:
        claims = app.current_event.request_context.authorizer
        if claims and "jwt" in claims:
            return claims["jwt"]["claims"]["sub"]
        if claims and "claims" in claims:
            return claims["claims"]["sub"]
        if claims and "sub" in claims:
            return claims["sub"]
        raise UnauthorizedError("Unable to extract user ID from token")
    except (KeyError, TypeError, AttributeError) as e:
        logger.error(f"Failed to extract user_id: {e}")
        raise UnauthorizedError("Unable to extract user ID from token")


def _error_response(status_code: int, body: dict, headers: dict = None) -> Response:
    return Response(
        status_code=status_code,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(body),
        headers=headers,
    )


def _read_json_body():
    """Return the JSON body as a dict, or an error Response."""
    try:
        body = app.current_event.json_body
    except (json.JSONDecodeError, TypeError):
        return _error_response(400, {"error": "Invalid JSON body"})
    if not isinstance(body, dict):
        return _error_response(400, {"error": "Invalid JSON body"})
    return body


# =============================================================================
# AI Card Generation Endpoints
# =============================================================================


@app.post("/admin/cards/generate")
@tracer.capture_method
def generate_cards():
    """Generate, de-duplicate and store AI cards for review."""
    user_id = get_user_id_from_context()
    logger.info(f"Generating cards for user_id: {user_id}")

    body = _read_json_body()
    if isinstance(body, Response):
        return body

    try:
        summary = generation_service.generate_cards({**body, "requesting_user_id": user_id})
    except GenerationValidationError as e:
        logger.warning(f"Validation error: {e.errors}")
        return _error_response(400, {"error": "Invalid request", "details": e.errors})
    except GenerationRateLimitError as e:
        return _error_response(
            429,
            {"error": "Too many requests, please retry later", "retry_after": e.retry_after},
            headers={"Retry-After": str(int(e.retry_after))},
        )
    except GenerationCancelledError:
        return _error_response(503, {"error": "AI generation was cancelled"})
    except GenerationFailedError as e:
        logger.error(f"Error generating cards: {e}")
        return _error_response(500, {"error": "AI generation failed"})

    return Response(
        status_code=201,
        content_type=content_types.APPLICATION_JSON,
        body=json.dumps(summary.model_dump(mode="json")),
    )


@app.post("/admin/cards/generate/estimate")
@tracer.capture_method
def estimate_generation():
    """Estimate the cost of a generation request without running it."""
    body = _read_json_body()
    if isinstance(body, Response):
        return body

    try:
        request = GenerateCardsRequest(**body)
    except ValidationError as e:
        logger.warning(f"Validation error: {e}")
        details = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        return _error_response(400, {"error": "Invalid request", "details": details})

    estimate = estimate_generation_cost(request.count, request.theta, len(request.target_languages))
    return estimate.model_dump(mode="json")


# =============================================================================
# Lambda Handler
# =============================================================================


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_HTTP)
@tracer.capture_lambda_handler
def handler(event: dict, context: LambdaContext) -> dict:
    """Lambda handler for API Gateway events."""
    return app.resolve(event, context)
