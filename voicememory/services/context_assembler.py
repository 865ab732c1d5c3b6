"""
Context Assembler: gathers retrieved memories into a bounded prompt context for drafting.
"""

from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Set

from ..models.core import Namespace, PatternSource, SearchResult, VoiceProfile
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from ..utils.text_utils import snippet
from .memory_management import MemoryManagementService

logger = get_logger(__name__)

# Tone-matched examples shorter than this rarely carry any voice
MIN_EXAMPLE_LENGTH = 50

STYLE_GUIDELINES = [
    'Write in a warm, professional tone',
    'Be concise but complete',
    'Use natural, conversational language',
    'Match the tone and style of the examples above',
]


class ContextAssembler:
    """Assemble best-effort drafting context from several namespaces.

    Queries run concurrently and each one degrades to an empty section on
    failure or timeout, so assemble_context never raises.
    """

    def __init__(self,
                 memory: MemoryManagementService,
                 voice_profile: Optional[VoiceProfile] = None,
                 app_config: Optional[AppConfig] = None):
        """Initialize the context assembler."""
        self.config = app_config or config
        self.memory = memory
        self.voice_profile = voice_profile
        logger.info('Initialized ContextAssembler')

    def _queries(self, contact_id: str, message_text: str) -> Dict[str, Callable[[], List[SearchResult]]]:
        settings = self.config.context
        memory = self.memory
        queries = {
            'history': lambda: memory.get_conversation_history(contact_id, settings.history_top_k),
            'voice': lambda: memory.get_voice_patterns(settings.voice_top_k),
        }
        if message_text and message_text.strip():
            queries['relevant'] = lambda: memory.search_relevant_context(message_text, contact_id, settings.relevant_top_k)
            queries['knowledge'] = lambda: memory.search(Namespace.KNOWLEDGE_BASE, message_text, settings.kb_top_k)
            queries['notes'] = lambda: memory.search(Namespace.NOTES, message_text, settings.notes_top_k, {'contact': contact_id})
            queries['tone'] = lambda: memory.get_voice_patterns(settings.tone_top_k, source=PatternSource.LINKEDIN,
                                                                query_text=message_text)
        return queries

    def gather(self, contact_id: str, message_text: str) -> Dict[str, List[SearchResult]]:
        """Run every namespace query concurrently under one shared deadline.

        Returns:
            Results per section name; failed or timed-out sections are empty
        """
        queries = self._queries(contact_id, message_text)
        results: Dict[str, List[SearchResult]] = {name: [] for name in queries}
        timeout = self.config.context.query_timeout

        executor = ThreadPoolExecutor(max_workers=self.config.context.max_workers)
        try:
            futures = {name: executor.submit(query) for name, query in queries.items()}
            done, _ = wait(futures.values(), timeout=timeout)
            for name, future in futures.items():
                if future not in done:
                    logger.warning(f'Context query {name} timed out after {timeout}s')
                    continue
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.warning(f'Context query {name} failed, continuing without it: {e}')
        finally:
            # Don't block on stragglers that already timed out
            executor.shutdown(wait=False)

        return results

    def _format(self, results: Dict[str, List[SearchResult]]) -> str:
        length = self.config.context.snippet_length
        seen: Set[str] = set()

        def fresh(items: List[SearchResult]) -> List[SearchResult]:
            unique = []
            for item in items:
                if item.id in seen:
                    continue
                seen.add(item.id)
                unique.append(item)
            return unique

        context = ''

        history = fresh(results.get('history', []))
        if history:
            context += '\n\n## Past Conversations:\n'
            for i, conversation in enumerate(history, start=1):
                subject = conversation.metadata.get('subject', '')
                timestamp = conversation.metadata.get('timestamp', '')
                context += f'\n{i}. {subject} ({timestamp}):\n'
                context += f'{snippet(conversation.text, length)}\n'

        relevant = fresh(results.get('relevant', []) + results.get('knowledge', []) + results.get('notes', []))
        if relevant:
            context += '\n\n## Relevant Context:\n'
            for item in relevant:
                context += f'\n{snippet(item.text, length)}\n'

        # Only examples that are actually shown count as seen
        tone = [item for item in results.get('tone', []) if len(item.text) > MIN_EXAMPLE_LENGTH and item.id not in seen]
        tone = fresh(tone[:self.config.context.tone_examples_shown])
        patterns = [item for item in fresh(results.get('voice', [])) if item.text]
        guidance = self.voice_profile.to_prompt_guidance() if self.voice_profile else ''

        if tone or patterns or guidance:
            context += f'\n\n## {self.config.agent.owner_name}\'s Voice Profile:\n'

            if tone:
                context += '\n### Relevant Writing Style Examples:\n'
                context += 'These examples match the tone and context of this email:\n\n'
                for i, sample in enumerate(tone, start=1):
                    context += f'{i}. "{snippet(sample.text, length)}"\n\n'

            if patterns:
                context += '\n### Common Voice Patterns:\n'
                context += 'Use these patterns and style elements:\n'
                for pattern in patterns:
                    context += f'\n- {snippet(pattern.text, length)}'

            context += '\n\n### Writing Style Guidelines:\n'
            for line in STYLE_GUIDELINES:
                context += f'- {line}\n'
            if guidance:
                context += f'{guidance}\n'

        return context

    def assemble_context(self, contact_id: str, message_text: str) -> str:
        """Build the drafting context for a message from a contact. Never raises.

        Args:
            contact_id: Contact email address used as the conversation filter
            message_text: Body of the message being answered

        Returns:
            Context text, possibly empty
        """
        try:
            results = self.gather(contact_id, message_text)
            context = self._format(results)
            logger.debug(f'Assembled {len(context)} characters of context for {contact_id}')
            return context
        except Exception as e:
            logger.error(f'Error building context for draft: {e}')
            return ''
