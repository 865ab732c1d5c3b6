"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .models.core import PatternSource, VoicePattern
from .services.context_assembler import ContextAssembler
from .services.corpus_loader import CorpusLoaderError, load_linkedin_export
from .services.edit_learning import EditLearningService
from .services.memory_management import MemoryManagementService
from .services.voice_profile import VoiceProfileBuilder, VoiceProfileError
from .utils.bedrock_embed import BedrockEmbedError
from .utils.config import config
from .utils.health_check import get_health_status
from .utils.logging_config import get_logger
from .utils.vector_store import StoreUnavailableError

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Voice Memory')
memory_service = MemoryManagementService()
learning_service = EditLearningService(memory_service)
profile_builder = VoiceProfileBuilder(memory_service)
context_assembler = ContextAssembler(memory_service)


@mcp.tool()
def assemble_context(contact_email: str, message_text: str) -> str:
    """Build drafting context for a reply to a contact.

    Args:
        contact_email: Sender of the message being answered
        message_text: Body of the message being answered

    Returns:
        Context text with past conversations, relevant notes and voice guidance
    """
    if not contact_email or not contact_email.strip():
        raise ValueError('Contact email is required')
    return context_assembler.assemble_context(contact_email, message_text)


@mcp.tool()
def learn_from_edit(original: str, edited: str, context: str = 'manual') -> List[str]:
    """Learn voice patterns from a proposed draft and the text actually sent.

    Returns:
        The learned pattern texts
    """
    patterns = learning_service.learn_from_edit(original, edited, context)
    return [pattern.pattern for pattern in patterns]


@mcp.tool()
def store_record(namespace: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> str:
    """Store a text record in a namespace (conversations, voice, knowledgeBase, notes, emails).

    Returns:
        The stored record id
    """
    try:
        return memory_service.store_record(namespace, text, metadata)
    except (BedrockEmbedError, StoreUnavailableError) as e:
        logger.error(f'Error storing record via MCP: {e}')
        raise Exception(f'Store record failed: {e}')


@mcp.tool()
def add_voice_pattern(pattern: str, context: str = 'manual') -> str:
    """Add a hand-written voice pattern.

    Returns:
        The stored pattern id
    """
    try:
        return memory_service.store_voice_pattern(VoicePattern(pattern=pattern, source=PatternSource.MANUAL, context=context))
    except (BedrockEmbedError, StoreUnavailableError) as e:
        logger.error(f'Error storing voice pattern via MCP: {e}')
        raise Exception(f'Store voice pattern failed: {e}')


@mcp.tool()
def build_voice_profile(export_path: str) -> Dict[str, Any]:
    """Ingest a LinkedIn export and build the voice profile from it.

    Args:
        export_path: Path to the export .zip or extracted directory

    Returns:
        Dictionary with the profile and the ingestion report
    """
    try:
        corpus = load_linkedin_export(export_path)
        profile, report = profile_builder.ingest_and_build(corpus)
        context_assembler.voice_profile = profile

        logger.debug(f'MCP profile build analysed {profile.documents_analyzed} documents')
        return {
            'profile': profile.to_dict(),
            'ingestion': {
                'total': report.total,
                'processed': report.processed,
                'skipped': report.skipped,
                'not_attempted': report.not_attempted,
                'outcome': report.outcome.value,
                'error': report.error
            }
        }

    except (CorpusLoaderError, VoiceProfileError) as e:
        logger.error(f'Voice profile error in MCP build: {e}')
        raise Exception(f'Voice profile build failed: {e}')


@mcp.tool()
def retry_pending_learning() -> Dict[str, int]:
    """Retry learned patterns that could not be stored earlier."""
    stored, dropped = learning_service.retry_pending()
    return {'stored': stored, 'dropped': dropped, 'pending': len(learning_service.outbox)}


@mcp.tool()
def health() -> Dict[str, Any]:
    """Report the health of each backing service."""
    return get_health_status()


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
