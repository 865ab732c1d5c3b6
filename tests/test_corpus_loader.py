# tests/test_corpus_loader.py
#
# Tests for reading LinkedIn exports from a zip archive or a directory.

import zipfile

import pytest

from voicememory.services.corpus_loader import CorpusLoaderError, content_kind, is_content_file, load_linkedin_export, parse_rows

LONG_SHARE = 'Why we moved to weekly demos: faster feedback, fewer surprises and a calmer release week for everyone.'
LONG_ARTICLE = 'Small teams ship faster because every decision has fewer hops, and the feedback loop stays honest.'

SHARES_CSV = ('Date,ShareLink,ShareCommentary\n'
              f'2024-01-02,https://linkedin.com/share/1,"{LONG_SHARE}"\n'
              '2024-01-03,https://linkedin.com/share/2,Too short\n')
ARTICLES_CSV = f'Date,URL,Content\n2024-02-01,https://linkedin.com/pulse/1,"{LONG_ARTICLE}"\n'
CONNECTIONS_CSV = 'First Name,Last Name\nAlice,Smith\n'


class TestParsing:
    """Row parsing and file selection."""

    def test_short_rows_are_dropped(self):
        rows = [{'ShareCommentary': LONG_SHARE, 'Date': '2024-01-02'}, {'ShareCommentary': 'short'}]

        documents = parse_rows(rows, 'Shares.csv')

        assert len(documents) == 1
        assert documents[0].source_kind == 'share'
        assert documents[0].date == '2024-01-02'

    def test_content_file_detection(self):
        assert is_content_file('Basic_LinkedInDataExport/Shares.csv')
        assert is_content_file('Articles.csv')
        assert not is_content_file('Connections.csv')

    def test_content_kind(self):
        assert content_kind('Articles.csv') == 'article'
        assert content_kind('Comments.csv') == 'comment'
        assert content_kind('Posts.csv') == 'post'


class TestLoadExport:
    """Loading whole exports."""

    def test_load_from_zip(self, tmp_path):
        archive_path = tmp_path / 'export.zip'
        with zipfile.ZipFile(archive_path, 'w') as archive:
            archive.writestr('Shares.csv', '\ufeff' + SHARES_CSV)
            archive.writestr('Articles.csv', ARTICLES_CSV)
            archive.writestr('Connections.csv', CONNECTIONS_CSV)

        documents = load_linkedin_export(str(archive_path))

        assert [d.text for d in documents] == [LONG_ARTICLE, LONG_SHARE]
        assert documents[0].url == 'https://linkedin.com/pulse/1'
        assert documents[1].source_file == 'Shares.csv'

    def test_load_from_directory(self, tmp_path):
        (tmp_path / 'Shares.csv').write_text(SHARES_CSV, encoding='utf-8')
        (tmp_path / 'Connections.csv').write_text(CONNECTIONS_CSV, encoding='utf-8')

        documents = load_linkedin_export(str(tmp_path))

        assert [d.text for d in documents] == [LONG_SHARE]

    def test_missing_path(self, tmp_path):
        with pytest.raises(CorpusLoaderError):
            load_linkedin_export(str(tmp_path / 'nope.zip'))

    def test_not_a_zip(self, tmp_path):
        bogus = tmp_path / 'export.zip'
        bogus.write_text('not a zip', encoding='utf-8')

        with pytest.raises(CorpusLoaderError):
            load_linkedin_export(str(bogus))
