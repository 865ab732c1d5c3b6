"""
Health check utilities for the application.
"""

from typing import Any, Dict, Optional

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .config import AppConfig, config
from .logging_config import get_logger

logger = get_logger(__name__)


def check_health(app_config: Optional[AppConfig] = None) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status(app_config)

        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            logger.warning('Some system components are unhealthy')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    app_config = app_config or config
    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(app_config.bedrock_llm)
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': app_config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check Bedrock Embed
    try:
        embed = BedrockEmbed(app_config.bedrock_embed)
        health_status['bedrock_embed'] = {
            'healthy': embed.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': app_config.bedrock_embed.model_id
        }
    except Exception as e:
        health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    # Check the vector store
    try:
        from ..services.memory_management import create_vector_store
        store = create_vector_store(app_config)
        health_status['vector_store'] = {
            'healthy': store.health_check(),
            'service': f'Vector store ({app_config.vector_store.backend})',
            'endpoint': app_config.opensearch.endpoint
        }
    except Exception as e:
        health_status['vector_store'] = {'healthy': False, 'service': 'Vector store', 'error': str(e)}

    return health_status


def get_system_info(app_config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    app_config = app_config or config
    return {
        'service_name': 'VoiceMemory',
        'version': '1.0.0',
        'configuration': {
            'bedrock_llm_model': app_config.bedrock_llm.model_id,
            'bedrock_embed_model': app_config.bedrock_embed.model_id,
            'vector_store_backend': app_config.vector_store.backend,
            'max_text_length': app_config.memory.max_text_length,
            'aws_region': app_config.bedrock_llm.region
        },
        'health_status': get_health_status(app_config)
    }
