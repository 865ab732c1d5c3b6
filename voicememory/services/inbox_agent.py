"""
Inbox agent: drafts replies to unread mail and learns from what the owner sends.

Drafts are created in the mailbox for review; nothing is ever sent.
"""

import re
from typing import Any, Dict, List, Optional, Protocol, Set

from cachetools import TTLCache

from ..models.core import DraftResult, EmailMessage
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from ..utils.vector_store import StoreUnavailableError
from ..utils.bedrock_embed import BedrockEmbedError
from .context_assembler import ContextAssembler
from .edit_learning import EditLearningService
from .memory_management import MemoryManagementService

logger = get_logger(__name__)

NO_REPLY_SENDER = re.compile(r'no-?reply|do-?not-?reply|mailer-daemon|postmaster|notifications?@', re.IGNORECASE)
AUTOMATED_SUBJECT = re.compile(r'^(?:automatic reply|auto-reply|out of office|undeliverable|delivery status notification)',
                               re.IGNORECASE)

PREFERRED_PHRASES = ['Happy to', 'Two quick options', 'If helpful']
AVOIDED_PHRASES = ['Per my last', 'Kindly']
TARGET_WORD_LIMIT = 180

# Characters of the subject used in the should-respond cache key
SUBJECT_KEY_LENGTH = 50


class MailClient(Protocol):
    """Mail provider operations the agent relies on."""

    def fetch_unread(self, limit: int) -> List[EmailMessage]:
        ...

    def get_message(self, message_id: str) -> EmailMessage:
        ...

    def create_reply_draft(self, message_id: str) -> str:
        ...

    def update_draft(self, draft_id: str, html_body: str) -> None:
        ...

    def get_sent_messages(self, hours: int) -> List[EmailMessage]:
        ...


class CRMClient(Protocol):
    """CRM operations the agent relies on. Draft records are dicts with 'id' and 'proposed_reply'."""

    def find_or_create_contact(self, email: str, name: str) -> str:
        ...

    def create_draft_record(self, **fields: Any) -> str:
        ...

    def create_interaction_record(self, **fields: Any) -> str:
        ...

    def find_draft_by_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        ...

    def update_draft_record(self, draft_record_id: str, **fields: Any) -> None:
        ...


def determine_priority(message: EmailMessage) -> str:
    content = f'{message.subject} {message.body}'.lower()
    if any(keyword in content for keyword in ['urgent', 'asap', 'immediately', 'emergency']):
        return 'Urgent'
    if any(keyword in content for keyword in ['important', 'priority', 'deadline']):
        return 'High'
    return 'Medium'


def classify_email_type(message: EmailMessage) -> str:
    content = f'{message.subject} {message.body}'.lower()
    if 'follow up' in content or 'follow-up' in content:
        return 'Follow-up'
    if any(word in content for word in ['support', 'help', 'issue']):
        return 'Support'
    if any(word in content for word in ['purchase', 'buy', 'price']):
        return 'Sales'
    if 'question' in content or '?' in content:
        return 'Inquiry'
    return 'Other'


def analyze_sentiment(message: EmailMessage) -> str:
    content = f'{message.subject} {message.body}'.lower()
    if 'urgent' in content or 'emergency' in content:
        return 'Urgent'
    if any(word in content for word in ['problem', 'issue', 'complaint', 'disappointed', 'angry']):
        return 'Negative'
    if any(word in content for word in ['thank', 'great', 'excellent', 'happy', 'pleased']):
        return 'Positive'
    return 'Neutral'


def requires_action(message: EmailMessage) -> bool:
    content = f'{message.subject} {message.body}'.lower()
    return any(word in content for word in ['please', 'can you', 'could you', 'need', 'require'])


def summarize(message: EmailMessage) -> str:
    words = ' '.join(message.body.split()[:20])
    return f'Email about: {message.subject}. {words}...'


def voice_score(text: str) -> float:
    """Heuristic 0-1 score of how closely a draft follows the voice target."""
    score = 0.5
    for phrase in PREFERRED_PHRASES:
        if phrase in text:
            score += 0.1
    for phrase in AVOIDED_PHRASES:
        if phrase in text:
            score -= 0.2
    if len(text.split()) <= TARGET_WORD_LIMIT:
        score += 0.1
    return min(max(score, 0.0), 1.0)


def to_html(text: str) -> str:
    paragraphs = [p.replace('\n', '<br>') for p in text.strip().split('\n\n')]
    return ''.join(f'<p>{p}</p>' for p in paragraphs)


class InboxAgent:
    """Drafts replies to unread mail and feeds sent edits back into voice memory."""

    def __init__(self,
                 mail: MailClient,
                 crm: CRMClient,
                 memory: MemoryManagementService,
                 assembler: ContextAssembler,
                 learning: EditLearningService,
                 llm: Optional[BedrockLLM] = None,
                 app_config: Optional[AppConfig] = None):
        """Initialize the inbox agent."""
        self.config = app_config or config
        self.mail = mail
        self.crm = crm
        self.memory = memory
        self.assembler = assembler
        self.learning = learning
        self.llm = llm or BedrockLLM(self.config.bedrock_llm)

        # Process-lifetime state, reset on restart
        self.processed_ids: Set[str] = set()
        self.processed_sent_ids: Set[str] = set()
        self.decision_cache: TTLCache = TTLCache(maxsize=self.config.agent.decision_cache_size,
                                                 ttl=self.config.agent.decision_cache_ttl)
        self.is_processing = False

        logger.info('Initialized InboxAgent')

    def system_prompt(self, context: str) -> str:
        owner = self.config.agent.owner_name
        return f"""You are {owner}'s assistant writing email replies in {owner}'s voice.

VOICE TARGET (derived from LinkedIn + Sent edits):
- Tone: warm, direct, confident; plain English; no emojis
- Cadence: 2-4 short paragraphs; bullets OK; avoid walls of text
- Signature moves: start with 1-sentence why, address one concern, give 1 clear next step
- Phrases to favor: "Happy to...", "Two quick options...", "If helpful, I can..."
- Phrases to avoid: "Per my last...", "Kindly..."

Limits:
- <= {TARGET_WORD_LIMIT} words unless explicitly asked for detail
- No facts without sources from context
- Ask 1 clarifying question if missing info
{context}"""

    def should_respond(self, message: EmailMessage) -> bool:
        """Decide whether a message deserves a drafted reply, cached by sender and subject."""
        key = f'{message.sender.lower()}|{message.subject[:SUBJECT_KEY_LENGTH].lower()}'
        if key in self.decision_cache:
            return self.decision_cache[key]

        decision = True
        if NO_REPLY_SENDER.search(message.sender):
            decision = False
        elif AUTOMATED_SUBJECT.match(message.subject.strip()):
            decision = False
        elif 'unsubscribe' in message.body.lower():
            decision = False

        self.decision_cache[key] = decision
        return decision

    def _index_message(self, message: EmailMessage) -> None:
        try:
            self.memory.store_conversation(email_id=message.id,
                                           subject=message.subject,
                                           sender=message.sender,
                                           body=message.body,
                                           timestamp=message.timestamp,
                                           summary=summarize(message))
        except (BedrockEmbedError, StoreUnavailableError) as e:
            logger.warning(f'Could not index message {message.id}: {e}')

    def generate_draft_reply(self, message: EmailMessage, context: str) -> str:
        return self.llm.generate(message.body, self.system_prompt(context)).strip()

    def process_message(self, message: EmailMessage) -> DraftResult:
        """Draft a reply to one message and record it in the CRM.

        Args:
            message: The inbound message

        Returns:
            DraftResult for the created mailbox draft
        """
        logger.info(f'Processing message: {message.id}')

        contact_id = self.crm.find_or_create_contact(message.sender, message.sender_name)
        context = self.assembler.assemble_context(message.sender, message.body)
        self._index_message(message)

        reply = self.generate_draft_reply(message, context)
        score = voice_score(reply)

        draft_id = self.mail.create_reply_draft(message.id)
        self.mail.update_draft(draft_id, to_html(reply))

        self.crm.create_draft_record(title=f'Re: {message.subject}',
                                     contact_id=contact_id,
                                     source_message_id=message.id,
                                     conversation_id=message.conversation_id,
                                     proposed_reply=reply,
                                     draft_id=draft_id,
                                     priority=determine_priority(message),
                                     email_type=classify_email_type(message),
                                     word_count=len(reply.split()),
                                     voice_score=score)
        self.crm.create_interaction_record(title=f'Email from {message.sender_name or message.sender}',
                                           contact_id=contact_id,
                                           source_message_id=message.id,
                                           interaction_type='Inbound',
                                           subject=message.subject,
                                           summary=summarize(message),
                                           sentiment=analyze_sentiment(message),
                                           action_required=requires_action(message),
                                           outcome='In Progress')

        logger.info(f'Created draft {draft_id} for message {message.id} (voice score {score:.2f})')
        return DraftResult(message_id=message.id, draft_id=draft_id, proposed_reply=reply, voice_score=score,
                           web_link=message.web_link)

    def process_unread_emails(self) -> List[DraftResult]:
        """Draft replies for unread mail not yet handled in this process.

        Returns immediately when a previous run is still in progress.
        """
        if self.is_processing:
            logger.warning('Previous inbox run still in progress, skipping')
            return []

        self.is_processing = True
        results = []
        try:
            messages = self.mail.fetch_unread(self.config.agent.unread_batch_size)
            logger.info(f'Fetched {len(messages)} unread messages')
            for message in messages:
                if message.id in self.processed_ids:
                    continue
                if not self.should_respond(message):
                    logger.debug(f'No reply needed for {message.id}')
                    self.processed_ids.add(message.id)
                    continue
                try:
                    results.append(self.process_message(message))
                    self.processed_ids.add(message.id)
                except Exception as e:
                    logger.error(f'Error processing message {message.id}: {e}')
        finally:
            self.is_processing = False

        return results

    def process_sent_emails(self, hours: Optional[int] = None) -> int:
        """Learn from sent replies that started as one of our drafts.

        Returns:
            Number of sent messages matched to a draft
        """
        hours = hours or self.config.agent.sent_lookback_hours
        matched = 0

        for sent in self.mail.get_sent_messages(hours):
            if sent.id in self.processed_sent_ids:
                continue
            try:
                draft = self.crm.find_draft_by_conversation(sent.conversation_id)
                if draft:
                    self.learning.learn_from_edit(draft.get('proposed_reply', ''), sent.body,
                                                  context=f"draft:{draft.get('id')} sent:{sent.id}")
                    # Learned once, even if the CRM update below fails
                    self.processed_sent_ids.add(sent.id)
                    matched += 1
                    self.crm.update_draft_record(draft['id'], status='Sent', web_link=sent.web_link)
                self.processed_sent_ids.add(sent.id)
            except Exception as e:
                logger.error(f'Error processing sent email {sent.id}: {e}')

        self.learning.retry_pending()
        logger.info(f'Matched {matched} sent emails to drafts')
        return matched
