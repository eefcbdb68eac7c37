"""Amazon Bedrock client for AI card generation."""

import json
import os
from dataclasses import dataclass
from typing import Dict, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from ..models.generate import ModelTier

logger = Logger()


class BedrockServiceError(Exception):
    """Base exception for Bedrock service errors."""

    pass


class BedrockRateLimitError(BedrockServiceError):
    """Raised when Bedrock API rate limit is exceeded."""

    pass


class BedrockTransientError(BedrockServiceError):
    """Raised for failures that may succeed on a later call."""

    pass


class BedrockTimeoutError(BedrockTransientError):
    """Raised when Bedrock API times out."""

    pass


class BedrockInternalError(BedrockTransientError):
    """Raised when Bedrock API returns internal error."""

    pass


class BedrockFatalError(BedrockServiceError):
    """Raised for failures that will not succeed on retry."""

    pass


RATE_LIMIT_CODES = ("ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException")
TIMEOUT_CODES = ("ReadTimeoutError", "ConnectTimeoutError", "ModelTimeoutException")
INTERNAL_CODES = ("InternalServerException", "ServiceException", "ServiceUnavailableException", "ModelNotReadyException")


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters for one model call."""

    temperature: float
    top_p: float
    max_output_tokens: int
    model_tier: ModelTier


class BedrockService:
    """Service for interacting with Amazon Bedrock."""

    DEFAULT_MODEL_IDS = {
        ModelTier.STANDARD: "anthropic.claude-3-haiku-20240307-v1:0",
        ModelTier.HIGH: "anthropic.claude-3-5-sonnet-20240620-v1:0",
    }
    DEFAULT_TIMEOUT = 60

    def __init__(
        self,
        model_ids: Optional[Dict[ModelTier, str]] = None,
        bedrock_client=None,
    ):
        """Initialize BedrockService.

        Args:
            model_ids: Bedrock model ID per model tier. Defaults to
                BEDROCK_MODEL_ID_STANDARD / BEDROCK_MODEL_ID_HIGH env vars,
                then Claude 3 Haiku and Claude 3.5 Sonnet.
            bedrock_client: Optional boto3 Bedrock client for testing.
        """
        self.model_ids = {
            ModelTier.STANDARD: os.environ.get(
                "BEDROCK_MODEL_ID_STANDARD", self.DEFAULT_MODEL_IDS[ModelTier.STANDARD]
            ),
            ModelTier.HIGH: os.environ.get(
                "BEDROCK_MODEL_ID_HIGH", self.DEFAULT_MODEL_IDS[ModelTier.HIGH]
            ),
        }
        if model_ids:
            self.model_ids.update(model_ids)

        if bedrock_client:
            self.client = bedrock_client
        else:
            config = Config(
                read_timeout=self.DEFAULT_TIMEOUT,
                connect_timeout=5,
                retries={"max_attempts": 0},  # Backoff is decided by the generation service
            )
            endpoint_url = os.environ.get("BEDROCK_ENDPOINT_URL")
            if endpoint_url:
                self.client = boto3.client(
                    "bedrock-runtime",
                    config=config,
                    endpoint_url=endpoint_url,
                )
            else:
                self.client = boto3.client("bedrock-runtime", config=config)

    def model_id_for(self, model_tier: ModelTier) -> str:
        return self.model_ids[model_tier]

    def generate(self, prompt: str, config: GenerationConfig) -> str:
        """Invoke the model for ``config.model_tier`` and return its text.

        Args:
            prompt: The prompt to send.
            config: Sampling parameters and model tier.

        Returns:
            Response text from the model.

        Raises:
            BedrockRateLimitError: If rate limit exceeded.
            BedrockTransientError: On timeouts, connection failures or internal service errors.
            BedrockFatalError: On any other failure.
        """
        model_id = self.model_id_for(config.model_tier)
        request_body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": config.max_output_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                }
            ],
        }

        try:
            response = self.client.invoke_model(
                modelId=model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")

            if error_code in RATE_LIMIT_CODES:
                raise BedrockRateLimitError("Bedrock rate limit exceeded") from e
            elif error_code in TIMEOUT_CODES:
                raise BedrockTimeoutError("Bedrock API timed out") from e
            elif error_code in INTERNAL_CODES:
                raise BedrockInternalError("Bedrock internal error") from e
            else:
                raise BedrockFatalError(f"Bedrock API error: {error_code}") from e
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            raise BedrockTimeoutError("Bedrock API timed out") from e
        except BotoCoreError as e:
            raise BedrockTransientError(f"Bedrock connection error: {e}") from e

        try:
            raw_body = response["body"].read()
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            raise BedrockTimeoutError("Bedrock response read timed out") from e
        except BotoCoreError as e:
            raise BedrockTransientError(f"Bedrock connection error: {e}") from e
        except (KeyError, TypeError) as e:
            raise BedrockFatalError(f"Unexpected Bedrock response: {e}") from e

        try:
            response_body = json.loads(raw_body)
            text = response_body["content"][0]["text"]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise BedrockFatalError(f"Unexpected Bedrock response: {e}") from e

        usage = response_body.get("usage", {})
        logger.debug(
            f"Bedrock call to {model_id} finished",
            extra={
                "input_tokens": usage.get("input_tokens"),
                "output_tokens": usage.get("output_tokens"),
            },
        )
        return text
