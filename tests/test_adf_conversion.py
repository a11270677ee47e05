"""Tests for ADF to Markdown conversion of page bodies."""

import json
import unittest
from unittest.mock import patch

from converters import ERROR_BANNER, AdfMarkdownConverter, sanitize_text
from models import ConfluenceDocument


def doc(*content):
    return {'type': 'doc', 'version': 1, 'content': list(content)}


def text(value, *marks):
    node = {'type': 'text', 'text': value}
    if marks:
        node['marks'] = list(marks)
    return node


def paragraph(*content):
    return {'type': 'paragraph', 'content': list(content)}


def list_item(*content):
    return {'type': 'listItem', 'content': list(content)}


def cell(value, header=False):
    return {'type': 'tableHeader' if header else 'tableCell', 'content': [paragraph(text(value))]}


def row(*cells):
    return {'type': 'tableRow', 'content': list(cells)}


def make_document(body, **kwargs):
    defaults = {
        'id': '1001',
        'title': 'Page',
        'status': 'current',
        'body': body if isinstance(body, str) or body is None else json.dumps(body),
        'space_key': 'ENG',
    }
    defaults.update(kwargs)
    return ConfluenceDocument(**defaults)


class TestBlockNodes(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_paragraph(self):
        """Test a paragraph becomes a line of text."""
        markdown = self.converter.convert_adf(doc(paragraph(text('Hello world'))))
        self.assertEqual(markdown, 'Hello world')

    def test_heading_levels(self):
        """Test heading levels 1-6 map to the same number of hashes."""
        for level in range(1, 7):
            adf = doc({'type': 'heading', 'attrs': {'level': level}, 'content': [text('Title')]})
            self.assertEqual(self.converter.convert_adf(adf), '#' * level + ' Title')

    def test_heading_level_clamped(self):
        """Test heading levels above 6 are clamped."""
        adf = doc({'type': 'heading', 'attrs': {'level': 7}, 'content': [text('Deep')]})
        self.assertEqual(self.converter.convert_adf(adf), '###### Deep')

    def test_bullet_list(self):
        """Test bullet list items use dash markers."""
        adf = doc({'type': 'bulletList', 'content': [
            list_item(paragraph(text('one'))),
            list_item(paragraph(text('two'))),
        ]})
        self.assertEqual(self.converter.convert_adf(adf), '- one\n- two')

    def test_ordered_list_honours_start(self):
        """Test ordered lists start at attrs.order."""
        adf = doc({'type': 'orderedList', 'attrs': {'order': 3}, 'content': [
            list_item(paragraph(text('three'))),
            list_item(paragraph(text('four'))),
        ]})
        self.assertEqual(self.converter.convert_adf(adf), '3. three\n4. four')

    def test_nested_list_is_indented(self):
        """Test nested lists are indented under their parent item."""
        adf = doc({'type': 'bulletList', 'content': [
            list_item(
                paragraph(text('parent')),
                {'type': 'bulletList', 'content': [list_item(paragraph(text('child')))]}
            ),
        ]})
        self.assertEqual(self.converter.convert_adf(adf), '- parent\n  - child')

    def test_code_block_with_language(self):
        """Test code blocks keep their language and raw text."""
        adf = doc({
            'type': 'codeBlock',
            'attrs': {'language': 'python'},
            'content': [text("print('x')\nvalue = a_b * 2")]
        })
        self.assertEqual(
            self.converter.convert_adf(adf),
            "```python\nprint('x')\nvalue = a_b * 2\n```"
        )

    def test_code_block_with_backticks_uses_longer_fence(self):
        """Test a code block containing a fence is wrapped in a longer fence."""
        adf = doc({'type': 'codeBlock', 'content': [text('```\ninner\n```')]})
        markdown = self.converter.convert_adf(adf)
        self.assertTrue(markdown.startswith('````\n'))
        self.assertTrue(markdown.endswith('\n````'))

    def test_code_block_keeps_blank_lines(self):
        """Test consecutive blank lines inside code survive cleanup."""
        adf = doc({'type': 'codeBlock', 'content': [text('a\n\n\n\nb')]})
        self.assertIn('a\n\n\n\nb', self.converter.convert_adf(adf))

    def test_blockquote(self):
        """Test blockquote lines are prefixed."""
        adf = doc({'type': 'blockquote', 'content': [paragraph(text('first')), paragraph(text('second'))]})
        self.assertEqual(self.converter.convert_adf(adf), '> first\n>\n> second')

    def test_rule_and_hard_break(self):
        """Test horizontal rules and hard breaks."""
        adf = doc(
            paragraph(text('line one'), {'type': 'hardBreak'}, text('line two')),
            {'type': 'rule'}
        )
        self.assertEqual(self.converter.convert_adf(adf), 'line one  \nline two\n\n---')

    def test_panel_renders_callout(self):
        """Test panels render as callout blockquotes with an icon."""
        adf = doc({'type': 'panel', 'attrs': {'panelType': 'warning'}, 'content': [paragraph(text('Careful'))]})
        markdown = self.converter.convert_adf(adf)
        self.assertEqual(markdown, '> ⚠️ **WARNING**\n>\n> Careful')

    def test_expand_renders_details(self):
        """Test expand sections become collapsible details blocks."""
        adf = doc({'type': 'expand', 'attrs': {'title': 'More <info>'}, 'content': [paragraph(text('Hidden'))]})
        markdown = self.converter.convert_adf(adf)
        self.assertEqual(markdown, '<details>\n<summary>More &lt;info&gt;</summary>\n\nHidden\n\n</details>')

    def test_task_list(self):
        """Test task items render checkbox state."""
        adf = doc({'type': 'taskList', 'content': [
            {'type': 'taskItem', 'attrs': {'state': 'DONE'}, 'content': [text('done')]},
            {'type': 'taskItem', 'attrs': {'state': 'TODO'}, 'content': [text('todo')]},
        ]})
        self.assertEqual(self.converter.convert_adf(adf), '- [x] done\n- [ ] todo')

    def test_decision_list(self):
        """Test decision items show whether they were decided."""
        adf = doc({'type': 'decisionList', 'content': [
            {'type': 'decisionItem', 'attrs': {'state': 'DECIDED'}, 'content': [text('Ship it')]},
            {'type': 'decisionItem', 'attrs': {'state': 'UNDECIDED'}, 'content': [text('Rename')]},
        ]})
        self.assertEqual(self.converter.convert_adf(adf), '- ✓ Ship it\n- ❓ Rename')

    def test_layout_columns_are_stacked(self):
        """Test layout columns are emitted one after another."""
        adf = doc({'type': 'layoutSection', 'content': [
            {'type': 'layoutColumn', 'content': [paragraph(text('left'))]},
            {'type': 'layoutColumn', 'content': [paragraph(text('right'))]},
        ]})
        self.assertEqual(self.converter.convert_adf(adf), 'left\n\nright')


class TestTables(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_uneven_rows_are_padded(self):
        """Test rows of 2, 3 and 1 cells render with 3 columns."""
        adf = doc({'type': 'table', 'content': [
            row(cell('a', header=True), cell('b', header=True)),
            row(cell('1'), cell('2'), cell('3')),
            row(cell('z')),
        ]})
        self.assertEqual(
            self.converter.convert_adf(adf),
            '| a | b |  |\n'
            '| --- | --- | --- |\n'
            '| 1 | 2 | 3 |\n'
            '| z |  |  |'
        )

    def test_cell_text_is_flattened_and_pipes_escaped(self):
        """Test multi-paragraph cells collapse to one line and pipes are escaped."""
        adf = doc({'type': 'table', 'content': [
            row(cell('h')),
            row({'type': 'tableCell', 'content': [paragraph(text('a|b')), paragraph(text('c'))]}),
        ]})
        self.assertIn('| a\\|b c |', self.converter.convert_adf(adf))

    def test_nested_table_does_not_disturb_outer_table(self):
        """Test a table inside a cell keeps the outer table's rows intact."""
        inner = {'type': 'table', 'content': [row(cell('x')), row(cell('y'))]}
        adf = doc({'type': 'table', 'content': [
            row(cell('h1', header=True), cell('h2', header=True)),
            row({'type': 'tableCell', 'content': [inner]}, cell('after')),
        ]})
        lines = self.converter.convert_adf(adf).split('\n')
        self.assertEqual(lines[0], '| h1 | h2 |')
        self.assertEqual(lines[1], '| --- | --- |')
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[2].endswith('| after |'))

    def test_two_tables_in_one_document(self):
        """Test each table renders its own rows."""
        adf = doc(
            {'type': 'table', 'content': [row(cell('first'))]},
            {'type': 'table', 'content': [row(cell('second'))]},
        )
        markdown = self.converter.convert_adf(adf)
        self.assertEqual(markdown, '| first |\n| --- |\n\n| second |\n| --- |')


class TestInlineNodes(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_text_is_sanitized(self):
        """Test Markdown-significant characters are escaped."""
        markdown = self.converter.convert_adf(doc(paragraph(text('1. *not* a list'))))
        self.assertEqual(markdown, '1\\. \\*not\\* a list')

    def test_em_inside_strong(self):
        """Test em is applied before strong regardless of payload order."""
        adf = doc(paragraph(text('x', {'type': 'strong'}, {'type': 'em'})))
        self.assertEqual(self.converter.convert_adf(adf), '**_x_**')

    def test_code_inside_em(self):
        """Test code is the innermost mark."""
        adf = doc(paragraph(text('x', {'type': 'em'}, {'type': 'code'})))
        self.assertEqual(self.converter.convert_adf(adf), '_`x`_')

    def test_link_mark(self):
        """Test link marks become inline links."""
        adf = doc(paragraph(text('site', {'type': 'link', 'attrs': {'href': 'https://example.com'}})))
        self.assertEqual(self.converter.convert_adf(adf), '[site](https://example.com)')

    def test_unknown_mark_is_skipped(self):
        """Test marks without a handler leave the text unchanged."""
        adf = doc(paragraph(text('plain', {'type': 'sparkle'})))
        self.assertEqual(self.converter.convert_adf(adf), 'plain')

    def test_mention_emoji_status_date(self):
        """Test inline chips."""
        adf = doc(paragraph(
            {'type': 'mention', 'attrs': {'id': 'u1', 'text': '@Alice'}},
            text(' '),
            {'type': 'emoji', 'attrs': {'shortName': ':smile:'}},
            text(' '),
            {'type': 'status', 'attrs': {'text': 'DONE', 'color': 'green'}},
            text(' '),
            {'type': 'date', 'attrs': {'timestamp': '1700000000000'}},
        ))
        self.assertEqual(self.converter.convert_adf(adf), '@Alice :smile: [DONE] 2023-11-14')

    def test_emoji_and_status_text_is_escaped(self):
        """Test chip labels cannot open emphasis in the surrounding text."""
        adf = doc(paragraph(
            {'type': 'emoji', 'attrs': {'shortName': ':white_check_mark:'}},
            text(' '),
            {'type': 'status', 'attrs': {'text': 'IN *REVIEW*'}},
        ))
        self.assertEqual(
            self.converter.convert_adf(adf),
            ':white\\_check\\_mark: [IN \\*REVIEW\\*]'
        )

    def test_media_variants(self):
        """Test file, link and external media."""
        adf = doc(
            {'type': 'mediaSingle', 'content': [
                {'type': 'media', 'attrs': {'type': 'file', 'id': 'abc', 'alt': 'diagram'}},
                {'type': 'caption', 'content': [text('Figure 1')]},
            ]},
            {'type': 'mediaGroup', 'content': [
                {'type': 'media', 'attrs': {'type': 'link', 'url': 'https://example.com/doc'}},
                {'type': 'media', 'attrs': {'type': 'external', 'url': 'https://example.com/a.png'}},
            ]},
        )
        self.assertEqual(
            self.converter.convert_adf(adf),
            '[diagram](attachment:abc)\n\n_Figure 1_\n\n'
            '[image](https://example.com/doc)\n![image](https://example.com/a.png)'
        )

    def test_inline_card(self):
        """Test smart links become plain links."""
        adf = doc(paragraph({'type': 'inlineCard', 'attrs': {'url': 'https://example.com'}}))
        self.assertEqual(self.converter.convert_adf(adf), '[https://example.com](https://example.com)')


class TestExtensions(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_info_macro(self):
        """Test the info macro renders as an info callout with its title."""
        adf = doc({
            'type': 'bodiedExtension',
            'attrs': {
                'extensionType': 'com.atlassian.confluence.macro.core',
                'extensionKey': 'info',
                'parameters': {'macroParams': {'title': {'value': 'Heads up'}}}
            },
            'content': [paragraph(text('Body'))]
        })
        self.assertEqual(self.converter.convert_adf(adf), '> ℹ️ **INFO**: Heads up\n>\n> Body')

    def test_code_macro(self):
        """Test the code macro renders a fenced block."""
        adf = doc({
            'type': 'extension',
            'attrs': {
                'extensionType': 'com.atlassian.confluence.macro.core',
                'extensionKey': 'code',
                'parameters': {'language': 'sql', 'text': 'SELECT * FROM t_1;'}
            }
        })
        self.assertEqual(self.converter.convert_adf(adf), '```sql\nSELECT * FROM t_1;\n```')

    def test_unknown_extension_fallback(self):
        """Test unsupported extensions leave a type:key placeholder."""
        adf = doc({'type': 'extension', 'attrs': {'extensionType': 'com.example', 'extensionKey': 'widget'}})
        self.assertEqual(self.converter.convert_adf(adf), '[com.example:widget]')


class TestUnknownNodes(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_unknown_node_children_are_converted(self):
        """Test unknown nodes fall back to their children."""
        adf = doc({'type': 'mysteryBlock', 'content': [paragraph(text('inside'))]})
        self.assertEqual(self.converter.convert_adf(adf), 'inside')

    def test_unknown_leaf_is_dropped(self):
        """Test unknown nodes without children produce nothing."""
        adf = doc(paragraph(text('kept')), {'type': 'mysteryLeaf'})
        self.assertEqual(self.converter.convert_adf(adf), 'kept')


class TestSanitizeText(unittest.TestCase):
    def test_escapes_every_special_character(self):
        """Test each special character gets one backslash."""
        for char in '\\*_`[]()#+-.!':
            self.assertEqual(sanitize_text(char), '\\' + char)

    def test_plain_text_unchanged(self):
        self.assertEqual(sanitize_text('plain words 123'), 'plain words 123')

    def test_not_idempotent(self):
        """Test sanitizing twice escapes the inserted backslashes again."""
        once = sanitize_text('a*b')
        self.assertEqual(once, 'a\\*b')
        self.assertNotEqual(sanitize_text(once), once)
        self.assertEqual(sanitize_text(once), 'a\\\\\\*b')


class TestConvertDocument(unittest.TestCase):
    def setUp(self):
        self.converter = AdfMarkdownConverter()

    def test_document_has_frontmatter_and_body(self):
        """Test a full page renders frontmatter followed by the body."""
        document = make_document(doc(paragraph(text('Body text'))), path=['Root', 'Child'])
        markdown = self.converter.convert_document(document)

        self.assertTrue(markdown.startswith('---\ntitle: "Page"\nid: "1001"\n'))
        self.assertIn('path: "Root > Child"\n', markdown)
        self.assertTrue(markdown.endswith('---\n\nBody text\n'))

    def test_invalid_json_body(self):
        """Test unparseable bodies produce frontmatter plus an error banner."""
        document = make_document('{not json')
        result = self.converter.convert_document_with_result(document)

        self.assertFalse(result.success)
        self.assertTrue(result.markdown.startswith('---\ntitle: "Page"\nid: "1001"\n'))
        self.assertIn(ERROR_BANNER, result.markdown)
        self.assertIn('Invalid ADF JSON', result.markdown)

    def test_deeply_nested_body(self):
        """Test a body too deep to decode becomes an error document."""
        document = make_document('[' * 100000 + ']' * 100000)
        result = self.converter.convert_document_with_result(document)

        self.assertFalse(result.success)
        self.assertTrue(result.markdown.startswith('---\ntitle: "Page"\nid: "1001"\n'))
        self.assertIn(f'{ERROR_BANNER} Invalid ADF JSON', result.markdown)

    def test_missing_body(self):
        """Test a page without a body converts to an error document."""
        markdown = self.converter.convert_document(make_document(None))
        self.assertIn(ERROR_BANNER, markdown)
        self.assertIn('No ADF content', markdown)

    def test_internal_failure_includes_raw_excerpt(self):
        """Test unexpected failures fall back to minimal frontmatter and a raw excerpt."""
        body = json.dumps({'type': 'doc', 'content': [], 'padding': 'x' * 1500})
        document = make_document(body)

        with patch.object(self.converter, 'convert_node', side_effect=RuntimeError('boom')):
            result = self.converter.convert_document_with_result(document)

        self.assertFalse(result.success)
        self.assertEqual(result.error, 'boom')
        self.assertTrue(result.markdown.startswith('---\ntitle: "Page"\nid: "1001"\n---\n\n'))
        self.assertNotIn('status:', result.markdown)
        self.assertIn(f'{ERROR_BANNER} boom', result.markdown)
        self.assertIn('```json\n' + body[:1000] + '\n```', result.markdown)
        self.assertNotIn(body[:1001], result.markdown)

    def test_convert_document_never_raises_on_garbage_nodes(self):
        """Test malformed nodes are tolerated."""
        adf = {'type': 'doc', 'content': [None, 42, {'type': 'paragraph', 'content': [{'type': 'text', 'text': None}]}]}
        result = self.converter.convert_document_with_result(make_document(adf))
        self.assertTrue(result.success)

    def test_table_ids_are_unique_across_documents(self):
        """Test the table counter keeps increasing across conversions."""
        adf = doc({'type': 'table', 'content': [row(cell('a'))]})
        self.converter.convert_document(make_document(adf))
        first = next(self.converter._table_ids)
        self.converter.convert_document(make_document(adf))
        self.assertGreater(next(self.converter._table_ids), first)


if __name__ == '__main__':
    unittest.main()
