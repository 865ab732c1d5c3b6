"""
Corpus loader for LinkedIn data exports.
"""

import csv
import io
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from ..models.core import CorpusDocument
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

CONTENT_FILES = ('articles.csv', 'comments.csv', 'shares.csv', 'posts.csv')

TEXT_COLUMNS = ['Content', 'ShareCommentary', 'Text', 'Body', 'Message', 'Description', 'Comment', 'Post']
DATE_COLUMNS = ['Date', 'Created Date', 'Posted Date', 'Timestamp', 'Time']
URL_COLUMNS = ['URL', 'ShareLink', 'Link', 'Permalink', 'Post URL', 'Article URL']

# Exports carry plenty of one-line reactions; skip anything this short
MIN_TEXT_LENGTH = 50


class CorpusLoaderError(Exception):
    """Custom exception for corpus loading errors."""
    pass


def _first_value(row: Dict[str, str], columns: List[str]) -> str:
    lowered = {(key or '').strip().lower(): value for key, value in row.items()}
    for column in columns:
        value = lowered.get(column.lower())
        if value and value.strip():
            return value.strip()
    return ''


def content_kind(filename: str) -> str:
    name = filename.lower()
    if 'article' in name:
        return 'article'
    if 'comment' in name:
        return 'comment'
    if 'share' in name:
        return 'share'
    return 'post'


def is_content_file(filename: str) -> bool:
    return Path(filename).name.lower() in CONTENT_FILES


def parse_rows(rows: Iterable[Dict[str, str]], filename: str) -> List[CorpusDocument]:
    """Turn CSV rows into corpus documents, keeping only substantial text."""
    documents = []
    kind = content_kind(filename)
    for row in rows:
        text = _first_value(row, TEXT_COLUMNS)
        if len(text) <= MIN_TEXT_LENGTH:
            continue
        documents.append(CorpusDocument(text=text,
                                        date=_first_value(row, DATE_COLUMNS),
                                        source_kind=kind,
                                        url=_first_value(row, URL_COLUMNS),
                                        source_file=Path(filename).name))
    return documents


def _read_csv_text(text: str, filename: str) -> List[CorpusDocument]:
    return parse_rows(csv.DictReader(io.StringIO(text)), filename)


def _iter_zip(path: Path) -> Iterable[Tuple[str, str]]:
    with zipfile.ZipFile(path) as archive:
        for name in sorted(archive.namelist()):
            if is_content_file(name):
                yield name, archive.read(name).decode('utf-8-sig', errors='replace')


def _iter_directory(path: Path) -> Iterable[Tuple[str, str]]:
    for file_path in sorted(path.rglob('*.csv')):
        if is_content_file(file_path.name):
            yield str(file_path), file_path.read_text(encoding='utf-8-sig', errors='replace')


def load_linkedin_export(path: str) -> List[CorpusDocument]:
    """Load posts, articles, comments and shares from an export zip or directory.

    Args:
        path: Path to the export .zip or an extracted directory

    Returns:
        Corpus documents in file then row order

    Raises:
        CorpusLoaderError: If the path is missing or unreadable
    """
    export_path = Path(path)
    if not export_path.exists():
        raise CorpusLoaderError(f'File not found: {path}')

    try:
        if export_path.is_dir():
            files = list(_iter_directory(export_path))
        else:
            files = list(_iter_zip(export_path))
    except (OSError, zipfile.BadZipFile, csv.Error) as e:
        logger.error(f'Error reading LinkedIn export {path}: {e}')
        raise CorpusLoaderError(f'Failed to read export: {e}')

    documents = []
    for filename, text in files:
        try:
            parsed = _read_csv_text(text, filename)
        except csv.Error as e:
            logger.warning(f'Skipping malformed CSV {filename}: {e}')
            continue
        logger.debug(f'Parsed {len(parsed)} documents from {filename}')
        documents.extend(parsed)

    logger.info(f'Loaded {len(documents)} documents from {path}')
    return documents
