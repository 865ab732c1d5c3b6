"""
Amazon Bedrock embedding client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import List

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockEmbedConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# Bedrock error codes that mean the account is out of throughput or quota
QUOTA_ERROR_CODES = {'ThrottlingException', 'ServiceQuotaExceededException', 'TooManyRequestsException'}

VALIDATION_ERROR_CODES = {'ValidationException'}


class BedrockEmbedError(Exception):
    """Custom exception for Bedrock embedding errors."""
    pass


class InvalidInputError(BedrockEmbedError):
    """Raised for input the provider can never embed. Never retried."""
    pass


class QuotaExceededError(BedrockEmbedError):
    """Raised when the provider rejects a request for billing or rate-limit reasons."""
    pass


class TransientFailureError(BedrockEmbedError):
    """Raised for any other failed embedding request."""
    pass


def _classify_client_error(error: ClientError) -> BedrockEmbedError:
    """Map a botocore ClientError onto the embedding error taxonomy."""
    error_info = error.response.get('Error', {})
    code = error_info.get('Code', '')
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')

    if code in QUOTA_ERROR_CODES or status == 429:
        return QuotaExceededError(f'Bedrock quota exceeded ({code or status}): {error}')
    if code in VALIDATION_ERROR_CODES:
        return InvalidInputError(f'Bedrock rejected input: {error}')
    return TransientFailureError(f'Bedrock request failed ({code or status}): {error}')


class BedrockEmbed:
    """Amazon Bedrock embedding client with retry logic and error handling."""

    def __init__(self, config: BedrockEmbedConfig, client=None):
        """
        Initialize Bedrock embedding client.

        Args:
            config: BedrockEmbedConfig instance with connection parameters
            client: Optional pre-built bedrock-runtime client
        """
        self.config = config
        self.model_id = config.model_id
        self.output_embedding_length = config.dimension

        # Retries are handled here so quota and transient errors get different back-off
        self.bedrock = client or boto3.client(service_name='bedrock-runtime',
                                              region_name=config.region,
                                              config=BotoConfig(retries={'max_attempts': 0}))

        logger.info(f'Initialized Bedrock Embed client with model: {self.model_id}')

    def _retry_delay(self, error: BedrockEmbedError, attempt: int) -> float:
        """Seconds to wait before retrying after a failed attempt (0-based)."""
        jitter = random.uniform(0, self.config.retry_jitter)
        if isinstance(error, QuotaExceededError):
            return self.config.quota_retry_delay * (2**attempt) + jitter
        return self.config.transient_retry_delay * (attempt + 1) + jitter

    def _invoke(self, data: dict) -> dict:
        """Single Bedrock invocation, with errors mapped onto the taxonomy."""
        try:
            response = self.bedrock.invoke_model(body=json.dumps(data),
                                                 modelId=self.model_id,
                                                 accept='application/json',
                                                 contentType='application/json')
            return json.loads(response.get('body').read())
        except ClientError as e:
            raise _classify_client_error(e) from e
        except (BotoCoreError, json.JSONDecodeError) as e:
            raise TransientFailureError(f'Bedrock request failed: {e}') from e

    def _call_with_retry(self, data: dict) -> List[float]:
        """
        Make a Bedrock API call with retry logic.

        Quota errors back off exponentially from ``quota_retry_delay``; other
        request errors, a vector of the wrong length included, back off
        linearly from ``transient_retry_delay``.

        Args:
            data: Request data dictionary

        Returns:
            Embedding parsed from the Bedrock response

        Raises:
            InvalidInputError: If the provider rejects the input
            QuotaExceededError: If quota errors persist through every attempt
            TransientFailureError: If other errors persist through every attempt
        """
        attempts = self.config.retry_attempts
        for attempt in range(attempts):
            try:
                logger.debug(f'Bedrock Embed request attempt {attempt + 1}/{attempts}')
                result = self._parse_embedding(self._invoke(data))
                logger.debug('Bedrock Embed request successful')
                return result

            except InvalidInputError:
                raise

            except (QuotaExceededError, TransientFailureError) as e:
                logger.warning(f'Bedrock Embed attempt {attempt + 1}/{attempts} failed: {e}')

                if attempt < attempts - 1:
                    delay = self._retry_delay(e, attempt)
                    logger.info(f'Retrying Bedrock Embed in {delay:.1f}s')
                    time.sleep(delay)
                else:
                    logger.error(f'Bedrock Embed failed after {attempts} attempts')
                    raise

        raise TransientFailureError(f'Bedrock Embed failed after {attempts} attempts')

    def _request_body(self, text: str, input_type: str) -> dict:
        model = self.model_id.lower()
        if 'titan' in model:
            return {'inputText': text, 'dimensions': self.output_embedding_length}
        if 'cohere' in model:
            if self.output_embedding_length != 1024:
                raise BedrockEmbedError(f'Cohere models only support 1024 dimensions, got {self.output_embedding_length}')
            return {'input_type': input_type, 'texts': [text]}
        raise BedrockEmbedError(f'Unsupported embedding model: {self.model_id}')

    def _parse_embedding(self, response: dict) -> List[float]:
        if 'embedding' in response:
            embedding = response['embedding']
        else:
            embeddings = response.get('embeddings') or []
            embedding = embeddings[0] if embeddings else []

        if len(embedding) != self.output_embedding_length:
            raise TransientFailureError(f'Unexpected embedding length {len(embedding)}, expected {self.output_embedding_length}')
        return embedding

    def embed(self, text: str, input_type: str = 'search_document') -> List[float]:
        """
        Generate an embedding for text.

        Args:
            text: Text to embed
            input_type: Cohere input type, ignored by Titan models

        Returns:
            List of embedding values

        Raises:
            InvalidInputError: If text is empty or rejected by the provider
            QuotaExceededError: If the provider quota is exhausted after retries
            TransientFailureError: If the request keeps failing after retries
        """
        if not text or not text.strip():
            raise InvalidInputError('Empty text provided for embedding')

        data = self._request_body(text, input_type)
        return self._call_with_retry(data)

    def embed_document(self, text: str) -> List[float]:
        """Generate embeddings for document text."""
        return self.embed(text, input_type='search_document')

    def embed_query(self, text: str) -> List[float]:
        """Generate embeddings for query text."""
        return self.embed(text, input_type='search_query')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock embedding service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            test_embedding = self.embed_document('test')
            return len(test_embedding) == self.output_embedding_length

        except Exception as e:
            logger.error(f'Bedrock Embed health check failed: {e}')
            return False
