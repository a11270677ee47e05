"""Tests for the Markdown writer and the output layout."""

from pathlib import Path

import pytest

from exporters import MarkdownExporter, SpacePathResolver, to_lower_kebab_case
from models import ConfluenceDocument


def make_document(page_id='1', title='Page', path=None, children=0, space_key='ENG'):
    return ConfluenceDocument(
        id=page_id, title=title, status='current', body=None,
        space_key=space_key, path=path or [], children_count=children
    )


@pytest.fixture
def config(tmp_path):
    return {
        'export': {'output_directory': str(tmp_path / 'out')},
        'spaces': [{'key': 'ENG', 'local_path': 'engineering'}, {'key': 'HR'}],
    }


class TestKebabCase:
    @pytest.mark.parametrize('title, expected', [
        ('Getting Started', 'getting-started'),
        ('Release Notes: v2.0!', 'release-notes-v2-0'),
        ('  Already-kebab  ', 'already-kebab'),
        ('snake_case_Title', 'snake_case_title'),
        ('Ünïcode Wörds', 'ünïcode-wörds'),
        ('???', ''),
    ])
    def test_titles(self, title, expected):
        assert to_lower_kebab_case(title) == expected


class TestSpacePathResolver:
    def test_local_path_and_key(self, config, tmp_path):
        resolver = SpacePathResolver(config)

        assert resolver.space_directory('ENG') == tmp_path / 'out' / 'engineering'
        assert resolver.space_directory('HR') == tmp_path / 'out' / 'HR'

    def test_leaf_page(self, config):
        resolver = SpacePathResolver(config)
        document = make_document(title='Deploy Guide', path=['Root Page', 'Ops & Infra'])

        assert resolver.relative_document_path(document) == Path('root-page', 'ops-infra', 'deploy-guide.md')

    def test_folder_page(self, config):
        """Test pages with children are written as index files."""
        resolver = SpacePathResolver(config)
        document = make_document(title='Ops & Infra', path=['Root Page'], children=3)

        assert resolver.relative_document_path(document) == Path('root-page', 'ops-infra', 'index.md')

    def test_child_sits_beside_folder_index(self, config):
        resolver = SpacePathResolver(config)
        parent = make_document(title='Parent', children=1)
        child = make_document(page_id='2', title='Child', path=['Parent'])

        assert resolver.document_path(child).parent == resolver.document_path(parent).parent

    def test_untitled(self, config):
        resolver = SpacePathResolver(config)
        assert resolver.relative_document_path(make_document(title='!!!')) == Path('untitled.md')

    def test_output_dir_override(self, config, tmp_path):
        resolver = SpacePathResolver(config, output_dir=str(tmp_path / 'other'))
        assert resolver.space_directory('HR') == tmp_path / 'other' / 'HR'


class TestMarkdownExporter:
    def test_write(self, config, tmp_path):
        exporter = MarkdownExporter(config)
        path = exporter.write_document(make_document(title='Hello World'), '# Hello\n')

        assert path == tmp_path / 'out' / 'engineering' / 'hello-world.md'
        assert path.read_text(encoding='utf-8') == '# Hello\n'
        assert exporter.stats['total_pages_written'] == 1
        assert exporter.stats['total_bytes_written'] == len('# Hello\n')

    def test_unchanged_file_not_rewritten(self, config):
        exporter = MarkdownExporter(config)
        document = make_document()
        path = exporter.write_document(document, 'same\n')
        mtime = path.stat().st_mtime_ns

        assert exporter.write_document(document, 'same\n') == path
        assert path.stat().st_mtime_ns == mtime
        assert exporter.stats['total_pages_written'] == 1
        assert exporter.stats['total_pages_unchanged'] == 1
        assert exporter.documents_handled == 2

    def test_changed_file_rewritten(self, config):
        exporter = MarkdownExporter(config)
        document = make_document()
        exporter.write_document(document, 'old\n')
        path = exporter.write_document(document, 'new\n')

        assert path.read_text(encoding='utf-8') == 'new\n'
        assert exporter.stats['total_pages_written'] == 2

    def test_progress_events(self, config):
        exporter = MarkdownExporter(config)
        written = []
        finished = []
        exporter.subscribe(
            on_document_written=lambda document, count, path: written.append((document.id, count)),
            on_finished=finished.append
        )

        exporter.write_document(make_document('1', 'One'), 'a')
        exporter.write_document(make_document('2', 'Two'), 'b')
        exporter.finish()

        assert written == [('1', 1), ('2', 2)]
        assert finished == [2]

    def test_write_failure_is_counted(self, config, tmp_path):
        """Test a file blocking the space directory fails only that write."""
        (tmp_path / 'out').mkdir()
        (tmp_path / 'out' / 'engineering').write_text('not a directory', encoding='utf-8')
        exporter = MarkdownExporter(config)
        written = []
        exporter.subscribe(on_document_written=lambda *args: written.append(args))

        assert exporter.write_document(make_document(), 'x') is None
        assert exporter.stats['total_errors'] == 1
        assert exporter.errors[0]['page_id'] == '1'
        assert written == []

        assert exporter.write_document(make_document(space_key='HR'), 'x') is not None

    def test_finish_returns_stats(self, config):
        exporter = MarkdownExporter(config)
        exporter.write_document(make_document(), 'x')
        stats = exporter.finish()
        assert stats['total_pages_written'] == 1
        assert stats['total_errors'] == 0

    @pytest.mark.parametrize('size, expected', [(0, '0 B'), (512, '512.0 B'), (2048, '2.0 KB')])
    def test_format_bytes(self, size, expected):
        assert MarkdownExporter._format_bytes(size) == expected
