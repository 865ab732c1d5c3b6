# tests/test_bedrock_embed.py
#
# Tests for the embedding client's error taxonomy and retry back-off.
# The bedrock-runtime client is mocked, so no AWS calls are made.

import io
import json
from unittest.mock import MagicMock, call, patch

import pytest
from botocore.exceptions import ClientError

from voicememory.utils.bedrock_embed import BedrockEmbed, InvalidInputError, QuotaExceededError, TransientFailureError
from voicememory.utils.config import BedrockEmbedConfig


def _config(model_id='amazon.titan-embed-text-v2:0', dimension=4):
    return BedrockEmbedConfig(region='us-east-1',
                              model_id=model_id,
                              dimension=dimension,
                              retry_attempts=3,
                              quota_retry_delay=60.0,
                              transient_retry_delay=1.0,
                              retry_jitter=0.5)


def _response(payload):
    """Shape of an invoke_model response: a streaming body holding JSON."""
    return {'body': io.BytesIO(json.dumps(payload).encode('utf-8'))}


def _client_error(code, status):
    return ClientError({'Error': {'Code': code, 'Message': code}, 'ResponseMetadata': {'HTTPStatusCode': status}}, 'InvokeModel')


class TestEmbedRequests:
    """Request bodies and response parsing."""

    def test_titan_request_and_response(self):
        """Titan gets inputText + dimensions and returns the embedding as-is."""
        client = MagicMock()
        client.invoke_model.return_value = _response({'embedding': [0.1, 0.2, 0.3, 0.4]})
        embedder = BedrockEmbed(_config(), client=client)

        result = embedder.embed_document('hello world')

        assert result == [0.1, 0.2, 0.3, 0.4]
        body = json.loads(client.invoke_model.call_args.kwargs['body'])
        assert body == {'inputText': 'hello world', 'dimensions': 4}
        assert client.invoke_model.call_args.kwargs['modelId'] == 'amazon.titan-embed-text-v2:0'

    def test_cohere_query_input_type(self):
        """Cohere requests carry the query input type and parse the embeddings list."""
        client = MagicMock()
        client.invoke_model.return_value = _response({'embeddings': [[0.0] * 1024]})
        embedder = BedrockEmbed(_config(model_id='cohere.embed-english-v3', dimension=1024), client=client)

        result = embedder.embed_query('pricing question')

        assert len(result) == 1024
        body = json.loads(client.invoke_model.call_args.kwargs['body'])
        assert body == {'input_type': 'search_query', 'texts': ['pricing question']}

    def test_empty_text_is_invalid_input(self):
        """Blank text is rejected before any request is made."""
        client = MagicMock()
        embedder = BedrockEmbed(_config(), client=client)

        with pytest.raises(InvalidInputError):
            embedder.embed('   ')

        client.invoke_model.assert_not_called()

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_wrong_length_is_transient_failure(self, mock_sleep, mock_uniform):
        """A vector of the wrong dimension is retried like any transient failure."""
        client = MagicMock()
        client.invoke_model.side_effect = [_response({'embedding': [0.1, 0.2]}) for _ in range(3)]
        embedder = BedrockEmbed(_config(), client=client)

        with pytest.raises(TransientFailureError):
            embedder.embed('hello')

        assert client.invoke_model.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_wrong_length_then_valid_vector_succeeds(self, mock_sleep, mock_uniform):
        client = MagicMock()
        client.invoke_model.side_effect = [_response({'embedding': [0.1, 0.2]}), _response({'embedding': [0.1, 0.2, 0.3, 0.4]})]
        embedder = BedrockEmbed(_config(), client=client)

        assert embedder.embed('hello') == [0.1, 0.2, 0.3, 0.4]
        mock_sleep.assert_called_once_with(1.0)


class TestEmbedRetry:
    """Retry policy per error kind."""

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_quota_backs_off_exponentially(self, mock_sleep, mock_uniform):
        """Two quota errors then success: waits 60s then 120s and returns the vector."""
        client = MagicMock()
        client.invoke_model.side_effect = [
            _client_error('ThrottlingException', 429),
            _client_error('ThrottlingException', 429),
            _response({'embedding': [1.0, 0.0, 0.0, 0.0]}),
        ]
        embedder = BedrockEmbed(_config(), client=client)

        result = embedder.embed('hello')

        assert result == [1.0, 0.0, 0.0, 0.0]
        assert client.invoke_model.call_count == 3
        assert mock_sleep.call_args_list == [call(60.0), call(120.0)]

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_quota_exhausts_attempts(self, mock_sleep, mock_uniform):
        """Persistent quota errors surface as QuotaExceededError after three attempts."""
        client = MagicMock()
        client.invoke_model.side_effect = _client_error('ServiceQuotaExceededException', 400)
        embedder = BedrockEmbed(_config(), client=client)

        with pytest.raises(QuotaExceededError):
            embedder.embed('hello')

        assert client.invoke_model.call_count == 3
        assert mock_sleep.call_count == 2

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_http_429_counts_as_quota(self, mock_sleep, mock_uniform):
        """A bare 429 status is treated like a throttling code."""
        client = MagicMock()
        client.invoke_model.side_effect = [_client_error('SomethingElse', 429), _response({'embedding': [0.0, 0.0, 0.0, 1.0]})]
        embedder = BedrockEmbed(_config(), client=client)

        embedder.embed('hello')

        mock_sleep.assert_called_once_with(60.0)

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.0)
    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_transient_backs_off_linearly(self, mock_sleep, mock_uniform):
        """Server errors wait 1s, then 2s."""
        client = MagicMock()
        client.invoke_model.side_effect = [
            _client_error('InternalServerException', 500),
            _client_error('ModelNotReadyException', 503),
            _response({'embedding': [0.0, 1.0, 0.0, 0.0]}),
        ]
        embedder = BedrockEmbed(_config(), client=client)

        embedder.embed('hello')

        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    @patch('voicememory.utils.bedrock_embed.time.sleep')
    def test_validation_error_is_never_retried(self, mock_sleep):
        """Provider-rejected input fails immediately."""
        client = MagicMock()
        client.invoke_model.side_effect = _client_error('ValidationException', 400)
        embedder = BedrockEmbed(_config(), client=client)

        with pytest.raises(InvalidInputError):
            embedder.embed('hello')

        assert client.invoke_model.call_count == 1
        mock_sleep.assert_not_called()

    @patch('voicememory.utils.bedrock_embed.random.uniform', return_value=0.25)
    def test_jitter_is_added_to_delay(self, mock_uniform):
        """Jitter sits on top of the base delay."""
        embedder = BedrockEmbed(_config(), client=MagicMock())

        assert embedder._retry_delay(QuotaExceededError('quota'), 1) == 120.25
        assert embedder._retry_delay(TransientFailureError('boom'), 0) == 1.25
