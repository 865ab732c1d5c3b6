"""
Core data models for the voice memory system.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Namespace(str, Enum):
    """Logical partitions of the vector store."""
    CONVERSATIONS = 'conversations'
    VOICE = 'voice'
    KNOWLEDGE_BASE = 'knowledgeBase'
    NOTES = 'notes'
    EMAILS = 'emails'


class PatternSource(str, Enum):
    """Where a voice pattern was learned from."""
    LINKEDIN = 'linkedin'
    EMAIL_EDIT = 'email-edit'
    MANUAL = 'manual'


class DiffOperation(int, Enum):
    """Diff operation codes, ordered like diff-match-patch."""
    DELETE = -1
    EQUAL = 0
    INSERT = 1


class IngestionOutcome(str, Enum):
    """Final state of a corpus ingestion run."""
    COMPLETE = 'complete'
    PARTIAL = 'partial'
    ABORTED = 'aborted'


@dataclass(frozen=True)
class TextRecord:
    """A unit of content indexed for retrieval.

    The embedding is always computed from ``text`` as stored, except for voice
    patterns whose embedding comes from the full pattern text before truncation.
    """
    id: str  # Unique within its namespace
    namespace: Namespace
    text: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VoicePattern:
    """A stored example or heuristic describing the owner's writing style."""
    pattern: str
    source: PatternSource
    context: str  # Provenance label, e.g. "LinkedIn post" or a draft/sent id pair
    frequency: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResult:
    """A ranked hit returned by a vector store query."""
    id: str
    score: float
    metadata: Dict[str, Any]
    text: str = ''


@dataclass
class CorpusDocument:
    """A raw text record extracted from a bulk export."""
    text: str
    date: str = ''
    source_kind: str = 'post'  # post, article, comment or share
    url: str = ''
    source_file: str = ''


@dataclass
class EmailMessage:
    """A mail message as returned by the mail client."""
    id: str
    subject: str
    body: str
    sender: str
    sender_name: str = ''
    conversation_id: str = ''
    timestamp: str = ''
    web_link: str = ''


@dataclass
class DraftResult:
    """Outcome of drafting a reply to one message."""
    message_id: str
    draft_id: str
    proposed_reply: str
    voice_score: float
    web_link: str = ''


@dataclass
class Lexicon:
    """Recurring phrase shapes, each list ranked by frequency."""
    openers: List[str] = field(default_factory=list)
    closers: List[str] = field(default_factory=list)
    sign_offs: List[str] = field(default_factory=list)
    hedges: List[str] = field(default_factory=list)
    rhetorical_questions: List[str] = field(default_factory=list)


@dataclass
class Cadence:
    """Rhythm statistics of a corpus."""
    average_sentence_length: float = 0.0
    average_paragraph_count: float = 0.0
    bullet_usage: float = 0.0


@dataclass
class ToneSliders:
    """Keyword-prevalence proxies for tone, each in [0, 1]."""
    warmth: float = 0.0
    directness: float = 0.0
    formality: float = 0.0


@dataclass
class VoiceProfile:
    """Aggregate style profile computed from a corpus snapshot."""
    lexicon: Lexicon = field(default_factory=Lexicon)
    cadence: Cadence = field(default_factory=Cadence)
    tone_sliders: ToneSliders = field(default_factory=ToneSliders)
    signature_moves: List[str] = field(default_factory=list)
    documents_analyzed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return asdict(self)

    def to_prompt_guidance(self) -> str:
        """Render the profile as prompt guidance for the drafting step."""
        if self.documents_analyzed == 0:
            return ''

        lines = []
        if self.signature_moves:
            lines.append(f"- Signature moves: {'; '.join(self.signature_moves)}")
        if self.lexicon.openers:
            lines.append(f"- Favoured openers: {', '.join(self.lexicon.openers[:5])}")
        if self.lexicon.closers:
            lines.append(f"- Favoured closers: {', '.join(self.lexicon.closers[:5])}")
        if self.lexicon.sign_offs:
            lines.append(f"- Sign-offs: {', '.join(self.lexicon.sign_offs[:3])}")

        cadence = self.cadence
        if cadence.average_sentence_length:
            lines.append(f'- Sentences average {cadence.average_sentence_length:.0f} words')
        if cadence.bullet_usage >= 0.4:
            lines.append('- Bullets are welcome for lists of options')

        tone = self.tone_sliders
        lines.append(f'- Tone: warmth {tone.warmth:.1f}, directness {tone.directness:.1f}, formality {tone.formality:.1f}')
        return '\n'.join(lines)


@dataclass
class EditDelta:
    """Comparison result between a proposed draft and the text actually sent."""
    original_text: str
    edited_text: str
    diffs: List[Tuple[DiffOperation, str]] = field(default_factory=list)
    added_phrases: List[str] = field(default_factory=list)
    removed_phrases: List[str] = field(default_factory=list)
    style_changes: List[str] = field(default_factory=list)
    changes: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added_phrases or self.removed_phrases)


@dataclass
class IngestionReport:
    """Counts surfaced by a corpus ingestion run."""
    total: int
    processed: int = 0
    skipped: int = 0
    not_attempted: int = 0
    outcome: IngestionOutcome = IngestionOutcome.COMPLETE
    error: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return self.outcome == IngestionOutcome.PARTIAL
