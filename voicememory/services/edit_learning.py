"""
Edit Learning Service: learns writing-style deltas from what the owner actually sent.
"""

import re
import threading
from collections import deque
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Deque, List, Optional, Tuple

from ..models.core import DiffOperation, EditDelta, PatternSource, VoicePattern
from ..utils.bedrock_embed import BedrockEmbedError, QuotaExceededError
from ..utils.config import AppConfig, config
from ..utils.logging_config import get_logger
from ..utils.text_utils import truncate, word_count
from ..utils.vector_store import StoreUnavailableError
from .memory_management import MemoryManagementService

logger = get_logger(__name__)

GREETING_PATTERN = re.compile(r'^\s*((?:hi|hello|hey|dear|good morning|good afternoon|good evening)\b[^,!\n]*[,!]?)', re.IGNORECASE)

CLOSING_PATTERN = re.compile(r'\b(best regards|kind regards|warm regards|regards|thank you|thanks|cheers|best|sincerely|warmly)\b',
                             re.IGNORECASE)

SHORTER_RATIO = 0.8
LONGER_RATIO = 1.2

# Cap on removed phrases kept in pattern metadata
MAX_REMOVED_PHRASES = 10

Diff = List[Tuple[DiffOperation, List[str]]]


def _span_length(tokens: List[str]) -> int:
    return len(' '.join(tokens))


def _merge_edits(diffs: Diff) -> Diff:
    """Collapse each run of edits into one DELETE then one INSERT, and join adjacent equalities."""
    merged: Diff = []
    deleted: List[str] = []
    inserted: List[str] = []

    def flush():
        if deleted:
            merged.append((DiffOperation.DELETE, list(deleted)))
        if inserted:
            merged.append((DiffOperation.INSERT, list(inserted)))
        deleted.clear()
        inserted.clear()

    for operation, tokens in diffs:
        if not tokens:
            continue
        if operation == DiffOperation.DELETE:
            deleted.extend(tokens)
        elif operation == DiffOperation.INSERT:
            inserted.extend(tokens)
        else:
            flush()
            if merged and merged[-1][0] == DiffOperation.EQUAL:
                merged[-1] = (DiffOperation.EQUAL, merged[-1][1] + tokens)
            else:
                merged.append((DiffOperation.EQUAL, list(tokens)))
    flush()
    return merged


def _edit_weight(diffs: Diff) -> int:
    """Largest of the inserted and deleted character counts in a run of edits."""
    inserted = sum(_span_length(tokens) for op, tokens in diffs if op == DiffOperation.INSERT)
    deleted = sum(_span_length(tokens) for op, tokens in diffs if op == DiffOperation.DELETE)
    return max(inserted, deleted)


def cleanup_semantic(diffs: Diff) -> Diff:
    """Fold short equalities that sit between two edits into those edits.

    An equality is dissolved when it is no longer than the larger side of the
    edits both before and after it, the same rule diff-match-patch uses. The
    result reads as whole-phrase replacements rather than word confetti.
    """
    diffs = _merge_edits(diffs)
    changed = True
    while changed:
        changed = False
        for index, (operation, tokens) in enumerate(diffs):
            if operation != DiffOperation.EQUAL or index == 0 or index == len(diffs) - 1:
                continue

            before = []
            cursor = index - 1
            while cursor >= 0 and diffs[cursor][0] != DiffOperation.EQUAL:
                before.append(diffs[cursor])
                cursor -= 1
            after = []
            cursor = index + 1
            while cursor < len(diffs) and diffs[cursor][0] != DiffOperation.EQUAL:
                after.append(diffs[cursor])
                cursor += 1

            if not before or not after:
                continue

            length = _span_length(tokens)
            if length <= _edit_weight(before) and length <= _edit_weight(after):
                diffs = _merge_edits(diffs[:index] + [(DiffOperation.DELETE, tokens),
                                                      (DiffOperation.INSERT, tokens)] + diffs[index + 1:])
                changed = True
                break
    return diffs


def diff_words(original: str, edited: str) -> List[Tuple[DiffOperation, str]]:
    """Word-granularity diff of two texts with semantic clean-up.

    Whitespace is normalised, so EQUAL + INSERT spans joined by single spaces
    rebuild the edited text and EQUAL + DELETE spans rebuild the original.

    Args:
        original: Proposed draft
        edited: Text actually sent

    Returns:
        Ordered list of (operation, text) pairs
    """
    a, b = original.split(), edited.split()
    matcher = SequenceMatcher(None, a, b, autojunk=False)

    diffs: Diff = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == 'equal':
            diffs.append((DiffOperation.EQUAL, a[i1:i2]))
            continue
        if i2 > i1:
            diffs.append((DiffOperation.DELETE, a[i1:i2]))
        if j2 > j1:
            diffs.append((DiffOperation.INSERT, b[j1:j2]))

    return [(operation, ' '.join(tokens)) for operation, tokens in cleanup_semantic(diffs)]


def extract_greeting(text: str) -> str:
    """Greeting phrase of the first line, e.g. "Hi John,", or '' when there is none."""
    lines = text.strip().split('\n')
    match = GREETING_PATTERN.match(lines[0]) if lines else None
    return match.group(1).strip() if match else ''


def extract_closing(text: str) -> str:
    """Closing of the last three lines, from the last closing keyword to the end."""
    lines = [line.strip() for line in text.strip().split('\n')]
    tail = ' '.join(lines[-3:]).strip()
    matches = list(CLOSING_PATTERN.finditer(tail))
    if not matches:
        return ''
    return tail[matches[-1].start():].strip()


def _preference(label: str, new: str, old: str) -> str:
    new_text = f'"{new}"' if new else f'no {label.lower()}'
    old_text = f'"{old}"' if old else f'no {label.lower()}'
    return f'{label} preference: {new_text} over {old_text}'


def analyze_style_changes(original: str, edited: str) -> List[str]:
    """Length, greeting and closing observations between a draft and its sent version."""
    style_changes = []

    original_words = word_count(original)
    edited_words = word_count(edited)
    if original_words:
        if edited_words < original_words * SHORTER_RATIO:
            style_changes.append('Prefers shorter responses')
        elif edited_words > original_words * LONGER_RATIO:
            style_changes.append('Prefers more detailed responses')

    original_greeting = extract_greeting(original)
    edited_greeting = extract_greeting(edited)
    if original_greeting != edited_greeting:
        style_changes.append(_preference('Greeting', edited_greeting, original_greeting))

    original_closing = extract_closing(original)
    edited_closing = extract_closing(edited)
    if original_closing != edited_closing:
        style_changes.append(_preference('Closing', edited_closing, original_closing))

    return style_changes


@dataclass
class PendingLearning:
    """A voice pattern whose persistence failed and awaits retry."""
    pattern: VoicePattern
    attempts: int = 1
    last_error: str = ''


class LearningOutbox:
    """In-process queue of learned patterns that could not be stored yet."""

    def __init__(self, max_attempts: int):
        self.max_attempts = max_attempts
        self._items: Deque[PendingLearning] = deque()
        self._lock = threading.Lock()

    def put(self, pattern: VoicePattern, error: Exception) -> None:
        with self._lock:
            self._items.append(PendingLearning(pattern=pattern, last_error=str(error)))

    def take_all(self) -> List[PendingLearning]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def requeue(self, items: List[PendingLearning]) -> None:
        with self._lock:
            self._items.extendleft(reversed(items))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class EditLearningService:
    """Compare proposed drafts with sent mail and store what the owner changed."""

    def __init__(self, memory: MemoryManagementService, app_config: Optional[AppConfig] = None):
        """Initialize the edit learning service."""
        self.config = app_config or config
        self.memory = memory
        self.outbox = LearningOutbox(self.config.agent.outbox_max_attempts)
        logger.info('Initialized EditLearningService')

    def analyze_edit(self, original: str, edited: str) -> EditDelta:
        """Diff a proposed draft against the text actually sent.

        Args:
            original: Proposed draft text
            edited: Sent text

        Returns:
            EditDelta with diff operations, phrase deltas and style observations
        """
        diffs = diff_words(original, edited)

        added_phrases = []
        removed_phrases = []
        changes = []
        for operation, text in diffs:
            if operation == DiffOperation.INSERT:
                added_phrases.append(text)
                changes.append(f'Added: "{text}"')
            elif operation == DiffOperation.DELETE:
                removed_phrases.append(text)
                changes.append(f'Removed: "{text}"')

        return EditDelta(original_text=original,
                         edited_text=edited,
                         diffs=diffs,
                         added_phrases=added_phrases,
                         removed_phrases=removed_phrases,
                         style_changes=analyze_style_changes(original, edited),
                         changes=changes)

    def patterns_from_delta(self, delta: EditDelta, context: str) -> List[VoicePattern]:
        """One voice pattern per learning event, only when something was added."""
        if not delta.added_phrases:
            return []
        return [
            VoicePattern(pattern='; '.join(delta.added_phrases),
                         source=PatternSource.EMAIL_EDIT,
                         context=context,
                         frequency=1,
                         metadata={
                             'removed_phrases': [truncate(p, 200) for p in delta.removed_phrases[:MAX_REMOVED_PHRASES]],
                             'style_changes': delta.style_changes
                         })
        ]

    def learn_from_edit(self, original: str, edited: str, context: str) -> List[VoicePattern]:
        """Learn voice patterns from an edited draft. Never raises.

        Patterns whose storage fails are parked in the outbox for
        ``retry_pending`` instead of failing the caller's mail flow.

        Args:
            original: Proposed draft text
            edited: Sent text
            context: Provenance label, e.g. "draft:<id> sent:<id>"

        Returns:
            The patterns learned from this event (stored or queued)
        """
        try:
            delta = self.analyze_edit(original, edited)
            logger.info(f'Edit analysis for {context}: {len(delta.added_phrases)} added, '
                        f'{len(delta.removed_phrases)} removed, style changes: {delta.style_changes}')

            patterns = self.patterns_from_delta(delta, context)
            for pattern in patterns:
                try:
                    self.memory.store_voice_pattern(pattern)
                except (BedrockEmbedError, StoreUnavailableError) as e:
                    logger.warning(f'Could not store learned pattern for {context}, queued for retry: {e}')
                    self.outbox.put(pattern, e)

            logger.info(f'Learned {len(patterns)} patterns from edit')
            return patterns

        except Exception as e:
            logger.error(f'Error learning from edit {context}: {e}')
            return []

    def retry_pending(self) -> Tuple[int, int]:
        """Retry queued patterns.

        A quota error stops the pass and keeps the rest queued. Patterns that
        reach the attempt limit are dropped with an error log.

        Returns:
            Tuple of (stored, dropped) counts
        """
        items = self.outbox.take_all()
        stored = 0
        dropped = 0
        remaining: List[PendingLearning] = []

        for index, item in enumerate(items):
            try:
                self.memory.store_voice_pattern(item.pattern)
                stored += 1
            except (BedrockEmbedError, StoreUnavailableError) as e:
                item.attempts += 1
                item.last_error = str(e)
                if item.attempts >= self.outbox.max_attempts:
                    logger.error(f'Dropping learned pattern after {item.attempts} attempts: {e}')
                    dropped += 1
                else:
                    remaining.append(item)
                if isinstance(e, QuotaExceededError):
                    remaining.extend(items[index + 1:])
                    break

        self.outbox.requeue(remaining)
        if items:
            logger.info(f'Outbox retry stored {stored}, dropped {dropped}, pending {len(self.outbox)}')
        return stored, dropped
