"""
Voice Profile Service: mines a bulk text corpus for the owner's writing style.
"""

import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from ..models.core import (Cadence, CorpusDocument, IngestionOutcome, IngestionReport, Lexicon, PatternSource, ToneSliders,
                           VoicePattern, VoiceProfile)
from ..utils.bedrock_embed import BedrockEmbedError, QuotaExceededError
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from ..utils.text_utils import clean_text, word_count
from ..utils.vector_store import StoreUnavailableError
from .memory_management import MemoryManagementService

logger = get_logger(__name__)

LEXICON_TOP_N = 10

OPENER_PATTERNS = [
    re.compile(r'\b(?:Happy to|Glad to|Excited to|Pleased to)\b', re.IGNORECASE),
    re.compile(r'\b(?:Two quick|Three quick|A few quick)\b', re.IGNORECASE),
    re.compile(r'\b(?:If helpful|If useful|If relevant)\b', re.IGNORECASE),
]
CLOSER_PATTERNS = [
    re.compile(r'\b(?:Let me know|Feel free to|Happy to help|Hope this helps)\b', re.IGNORECASE),
    re.compile(r'\b(?:Best regards|Thank you|Thanks|Cheers)\b', re.IGNORECASE),
]
SIGN_OFF_PATTERNS = [re.compile(r'\b(?:Best|Cheers|Thanks|Regards)\b', re.IGNORECASE)]
HEDGE_PATTERNS = [re.compile(r'\b(?:I think|I believe|I feel|Perhaps|Maybe|Possibly)\b', re.IGNORECASE)]
QUESTION_PATTERNS = [re.compile(r'[A-Z][^.!?]{3,120}\?')]

WARMTH_WORDS = ['happy', 'excited', 'pleased', 'wonderful', 'great', 'love']
DIRECTNESS_WORDS = ['directly', 'clearly', 'specifically', 'exactly', 'precisely']
FORMALITY_WORDS = ['please', 'thank you', 'regards', 'sincerely', 'respectfully']

SENTENCE_SPLIT = re.compile(r'[.!?]+')
BULLET_PATTERN = re.compile(r'•|^\s*-\s', re.MULTILINE)
CAUSAL_OPENING = re.compile(r'^(?:Why|Because|The reason)\b', re.IGNORECASE)
CALL_TO_ACTION = re.compile(r'\b(?:Let me know|Feel free|Get in touch)\b', re.IGNORECASE)

# Characters at the end of a document searched for a call-to-action
CTA_WINDOW = 160

CAUSAL_OPENING_THRESHOLD = 0.3
BULLET_THRESHOLD = 0.4
CALL_TO_ACTION_THRESHOLD = 0.5


class VoiceProfileError(Exception):
    """Custom exception for voice profile errors."""
    pass


@dataclass
class _Document:
    raw: str
    text: str  # cleaned
    source: CorpusDocument


def find_patterns(text: str, patterns: Sequence[Pattern]) -> List[str]:
    """Top matches of a pattern family, most frequent first, ties by first occurrence."""
    matches: List[str] = []
    for pattern in patterns:
        matches.extend(match.group(0).strip() for match in pattern.finditer(text))
    return [match for match, _ in Counter(matches).most_common(LEXICON_TOP_N)]


def tone_score(text: str, words: List[str]) -> float:
    """Fraction of a keyword list present in text, capped at 1.0."""
    if not words:
        return 0.0
    lower_text = text.lower()
    found = sum(1 for word in words if re.search(rf'\b{re.escape(word)}\b', lower_text))
    return min(found / len(words), 1.0)


class VoiceProfileBuilder:
    """Build a voice profile from a corpus and seed the voice namespace with it."""

    def __init__(self, memory: Optional[MemoryManagementService] = None, app_config: Optional[AppConfig] = None):
        """Initialize the voice profile builder."""
        self.config = app_config or config
        self.memory = memory
        self.is_running = False
        logger.info('Initialized VoiceProfileBuilder')

    def prepare(self, corpus: Sequence[CorpusDocument]) -> List[_Document]:
        """Clean documents and drop those below the minimum length."""
        kept = []
        for document in corpus:
            raw = document.text or ''
            cleaned = clean_text(raw)
            if len(cleaned) >= self.config.ingestion.min_document_length:
                kept.append(_Document(raw=raw, text=cleaned, source=document))

        discarded = len(corpus) - len(kept)
        if discarded:
            logger.debug(f'Discarded {discarded} documents shorter than {self.config.ingestion.min_document_length} characters')
        return kept

    def analyze_lexicon(self, text: str) -> Lexicon:
        return Lexicon(openers=find_patterns(text, OPENER_PATTERNS),
                       closers=find_patterns(text, CLOSER_PATTERNS),
                       sign_offs=find_patterns(text, SIGN_OFF_PATTERNS),
                       hedges=find_patterns(text, HEDGE_PATTERNS),
                       rhetorical_questions=find_patterns(text, QUESTION_PATTERNS))

    def analyze_cadence(self, documents: List[_Document]) -> Cadence:
        """Sentence length, paragraph count and bullet usage.

        Paragraphs and bullets are read from the raw text because cleaning
        collapses newlines.
        """
        if not documents:
            return Cadence()

        total_words = 0
        total_sentences = 0
        total_paragraphs = 0
        bulleted = 0
        for document in documents:
            total_words += word_count(document.text)
            total_sentences += len([s for s in SENTENCE_SPLIT.split(document.text) if s.strip()])
            total_paragraphs += len([p for p in document.raw.split('\n') if p.strip()])
            if BULLET_PATTERN.search(document.raw):
                bulleted += 1

        return Cadence(average_sentence_length=total_words / total_sentences if total_sentences else 0.0,
                       average_paragraph_count=total_paragraphs / len(documents),
                       bullet_usage=bulleted / len(documents))

    def analyze_tone(self, text: str) -> ToneSliders:
        # Coarse keyword proxy, not calibrated against any ground truth
        return ToneSliders(warmth=tone_score(text, WARMTH_WORDS),
                           directness=tone_score(text, DIRECTNESS_WORDS),
                           formality=tone_score(text, FORMALITY_WORDS))

    def identify_signature_moves(self, documents: List[_Document]) -> List[str]:
        if not documents:
            return []

        count = len(documents)
        moves = []

        causal = sum(1 for d in documents if CAUSAL_OPENING.match(d.text)) / count
        if causal > CAUSAL_OPENING_THRESHOLD:
            moves.append('Start with a quick "why"')

        bullets = sum(1 for d in documents if BULLET_PATTERN.search(d.raw)) / count
        if bullets > BULLET_THRESHOLD:
            moves.append('Use bullet points for clarity')

        cta = sum(1 for d in documents if CALL_TO_ACTION.search(d.text[-CTA_WINDOW:])) / count
        if cta > CALL_TO_ACTION_THRESHOLD:
            moves.append('End with clear call-to-action')

        return moves

    def build_profile(self, corpus: Sequence[CorpusDocument]) -> VoiceProfile:
        """Compute a voice profile from a corpus. Deterministic for a given input order.

        Args:
            corpus: Documents from a bulk export

        Returns:
            VoiceProfile recomputed from scratch
        """
        documents = self.prepare(corpus)
        all_text = ' '.join(d.text for d in documents)

        profile = VoiceProfile(lexicon=self.analyze_lexicon(all_text),
                               cadence=self.analyze_cadence(documents),
                               tone_sliders=self.analyze_tone(all_text),
                               signature_moves=self.identify_signature_moves(documents),
                               documents_analyzed=len(documents))

        logger.info(f'Built voice profile from {len(documents)} documents')
        return profile

    def ingest(self, corpus: Sequence[CorpusDocument]) -> IngestionReport:
        """Store one voice pattern per corpus document, sequentially.

        Each document costs one embedding call, so documents are spaced by
        ``document_delay`` and by ``error_delay`` after a non-quota failure. A
        quota error or an unavailable store aborts the rest of the batch.

        Args:
            corpus: Documents from a bulk export

        Returns:
            IngestionReport with processed, skipped and not-attempted counts
        """
        if self.memory is None:
            raise VoiceProfileError('Ingestion requires a MemoryManagementService')

        documents = self.prepare(corpus)
        report = IngestionReport(total=len(documents))
        logger.info(f'Ingesting {len(documents)} documents...')

        for index, document in enumerate(documents):
            kind = document.source.source_kind or 'post'
            pattern = VoicePattern(pattern=document.text,
                                   source=PatternSource.LINKEDIN,
                                   context=f'LinkedIn {kind}',
                                   metadata={
                                       'kind': kind,
                                       'date': document.source.date,
                                       'url': document.source.url
                                   })
            try:
                self.memory.store_voice_pattern(pattern, merge_frequency=False)
                report.processed += 1
                time.sleep(self.config.ingestion.document_delay)

            except (QuotaExceededError, StoreUnavailableError) as e:
                report.skipped += 1
                report.not_attempted = len(documents) - index - 1
                report.outcome = IngestionOutcome.PARTIAL if report.processed else IngestionOutcome.ABORTED
                report.error = str(e)
                logger.error(f'Ingestion stopped at document {index + 1}/{len(documents)}: {e}')
                break

            except BedrockEmbedError as e:
                report.skipped += 1
                logger.warning(f'Skipping document {index + 1}/{len(documents)}: {e}')
                time.sleep(self.config.ingestion.error_delay)

        logger.info(f'Ingestion {report.outcome.value}: {report.processed} processed, {report.skipped} skipped, '
                    f'{report.not_attempted} not attempted')
        return report

    def ingest_and_build(self, corpus: Sequence[CorpusDocument]) -> Tuple[VoiceProfile, IngestionReport]:
        """Build the profile and seed the voice namespace in one run.

        Raises:
            VoiceProfileError: If another ingestion is already running in this process
        """
        if self.is_running:
            raise VoiceProfileError('Voice ingestion is already running')

        self.is_running = True
        try:
            profile = self.build_profile(corpus)
            report = self.ingest(corpus)
            return profile, report
        finally:
            self.is_running = False
