"""Unit tests for the Bedrock model client."""

import json
import pytest
from unittest.mock import MagicMock
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from connection_game.models.generate import ModelTier
from connection_game.services.bedrock import (
    BedrockFatalError,
    BedrockInternalError,
    BedrockRateLimitError,
    BedrockService,
    BedrockTimeoutError,
    BedrockTransientError,
    GenerationConfig,
)


STANDARD_CONFIG = GenerationConfig(
    temperature=0.6,
    top_p=0.9,
    max_output_tokens=2048,
    model_tier=ModelTier.STANDARD,
)
HIGH_CONFIG = GenerationConfig(
    temperature=0.9,
    top_p=0.82,
    max_output_tokens=4096,
    model_tier=ModelTier.HIGH,
)


def _response(text):
    body = MagicMock()
    body.read.return_value = json.dumps({
        "content": [{"text": text}],
        "usage": {"input_tokens": 10, "output_tokens": 20},
    }).encode()
    return {"body": body}


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "InvokeModel")


class TestBedrockServiceInvoke:
    """Tests for BedrockService API invocation."""

    @pytest.fixture
    def mock_bedrock_client(self):
        """Create mock Bedrock client."""
        return MagicMock()

    @pytest.fixture
    def bedrock_service(self, mock_bedrock_client):
        """Create BedrockService with mock client."""
        return BedrockService(
            model_ids={ModelTier.STANDARD: "standard-model", ModelTier.HIGH: "high-model"},
            bedrock_client=mock_bedrock_client,
        )

    def test_invoke_success(self, bedrock_service, mock_bedrock_client):
        """Test successful API invocation returns the model text."""
        mock_bedrock_client.invoke_model.return_value = _response('{"cards": []}')

        text = bedrock_service.generate("prompt", STANDARD_CONFIG)

        assert text == '{"cards": []}'
        mock_bedrock_client.invoke_model.assert_called_once()

    def test_request_carries_sampling_parameters(self, bedrock_service, mock_bedrock_client):
        """Test temperature, top_p and max_tokens are sent to the model."""
        mock_bedrock_client.invoke_model.return_value = _response("ok")

        bedrock_service.generate("hello", HIGH_CONFIG)

        kwargs = mock_bedrock_client.invoke_model.call_args.kwargs
        body = json.loads(kwargs["body"])
        assert kwargs["modelId"] == "high-model"
        assert body["max_tokens"] == 4096
        assert body["temperature"] == 0.9
        assert body["top_p"] == 0.82
        assert body["messages"] == [{"role": "user", "content": "hello"}]

    def test_model_selected_by_tier(self, bedrock_service, mock_bedrock_client):
        """Test the standard tier uses the standard model."""
        mock_bedrock_client.invoke_model.return_value = _response("ok")

        bedrock_service.generate("hello", STANDARD_CONFIG)

        assert mock_bedrock_client.invoke_model.call_args.kwargs["modelId"] == "standard-model"

    @pytest.mark.parametrize("code", ["ThrottlingException", "TooManyRequestsException"])
    def test_rate_limit_error(self, bedrock_service, mock_bedrock_client, code):
        """Test throttling maps to the rate-limit variant without retrying."""
        mock_bedrock_client.invoke_model.side_effect = _client_error(code)

        with pytest.raises(BedrockRateLimitError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

        assert mock_bedrock_client.invoke_model.call_count == 1

    def test_timeout_error(self, bedrock_service, mock_bedrock_client):
        """Test timeout error handling."""
        mock_bedrock_client.invoke_model.side_effect = _client_error("ReadTimeoutError")

        with pytest.raises(BedrockTimeoutError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

    def test_botocore_read_timeout(self, bedrock_service, mock_bedrock_client):
        """Test a socket level read timeout is transient."""
        mock_bedrock_client.invoke_model.side_effect = ReadTimeoutError(endpoint_url="https://bedrock")

        with pytest.raises(BedrockTransientError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

    @pytest.mark.parametrize(
        "error",
        [
            EndpointConnectionError(endpoint_url="https://bedrock"),
            ConnectionClosedError(endpoint_url="https://bedrock"),
        ],
    )
    def test_connection_error_is_transient(self, bedrock_service, mock_bedrock_client, error):
        """Test transport failures map to the transient variant."""
        mock_bedrock_client.invoke_model.side_effect = error

        with pytest.raises(BedrockTransientError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

    def test_body_read_timeout_is_transient(self, bedrock_service, mock_bedrock_client):
        """Test a timeout while streaming the response body is a timeout."""
        body = MagicMock()
        body.read.side_effect = ReadTimeoutError(endpoint_url="https://bedrock")
        mock_bedrock_client.invoke_model.return_value = {"body": body}

        with pytest.raises(BedrockTimeoutError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

    def test_internal_error_is_transient(self, bedrock_service, mock_bedrock_client):
        """Test internal errors map to the transient variant."""
        mock_bedrock_client.invoke_model.side_effect = _client_error("InternalServerException")

        with pytest.raises(BedrockInternalError) as exc_info:
            bedrock_service.generate("prompt", STANDARD_CONFIG)

        assert isinstance(exc_info.value, BedrockTransientError)

    def test_unknown_error_is_fatal(self, bedrock_service, mock_bedrock_client):
        """Test any other client error is fatal."""
        mock_bedrock_client.invoke_model.side_effect = _client_error("AccessDeniedException")

        with pytest.raises(BedrockFatalError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)

    def test_malformed_response_is_fatal(self, bedrock_service, mock_bedrock_client):
        """Test a response without content text is fatal."""
        body = MagicMock()
        body.read.return_value = json.dumps({"content": []}).encode()
        mock_bedrock_client.invoke_model.return_value = {"body": body}

        with pytest.raises(BedrockFatalError):
            bedrock_service.generate("prompt", STANDARD_CONFIG)


class TestBedrockServiceConfig:
    """Tests for model ID configuration."""

    def test_default_model_ids(self, monkeypatch):
        """Test defaults apply when no env vars are set."""
        monkeypatch.delenv("BEDROCK_MODEL_ID_STANDARD", raising=False)
        monkeypatch.delenv("BEDROCK_MODEL_ID_HIGH", raising=False)

        service = BedrockService(bedrock_client=MagicMock())

        assert service.model_id_for(ModelTier.STANDARD) == BedrockService.DEFAULT_MODEL_IDS[ModelTier.STANDARD]
        assert service.model_id_for(ModelTier.HIGH) == BedrockService.DEFAULT_MODEL_IDS[ModelTier.HIGH]

    def test_model_ids_from_env(self, monkeypatch):
        """Test env vars override the default models."""
        monkeypatch.setenv("BEDROCK_MODEL_ID_HIGH", "env-high-model")

        service = BedrockService(bedrock_client=MagicMock())

        assert service.model_id_for(ModelTier.HIGH) == "env-high-model"
