"""Tests for the Confluence storage-format normalizer."""

import unittest

import pytest

from converters.dialect_normalizer import RULE_NAMES, DialectNormalizer, normalize_document
from models import Attachment


def normalize(html, slug='my-page', attachments=None):
    return normalize_document(html, slug, attachments)


class TestImages:
    """Test image macros and blob images."""

    def test_attachment_image(self):
        html = '<ac:image><ri:attachment ri:filename="test.png" /></ac:image>'
        assert normalize(html) == '<img src="./attachments/my-page/test.png" alt="test.png" />'

    def test_attachment_filename_with_spaces(self):
        html = '<ac:image><ri:attachment ri:filename="test image.png" /></ac:image>'
        assert normalize(html) == '<img src="./attachments/my-page/test_image.png" alt="test_image.png" />'

    def test_attachment_filename_with_colons(self):
        html = '<ac:image><ri:attachment ri:filename="image2013-10-18 18:1:19.png" /></ac:image>'
        assert normalize(html) == (
            '<img src="./attachments/my-page/image2013-10-18_18_1_19.png" '
            'alt="image2013-10-18_18_1_19.png" />'
        )

    def test_image_with_attributes(self):
        html = '<ac:image ac:width="300" ac:align="center"><ri:attachment ri:filename="a.png"></ri:attachment></ac:image>'
        assert normalize(html) == '<img src="./attachments/my-page/a.png" alt="a.png" />'

    def test_external_image(self):
        html = '<ac:image><ri:url ri:value="https://example.com/image.png" /></ac:image>'
        assert normalize(html) == '<img src="https://example.com/image.png" alt="external-image" />'

    def test_blob_image_resolved_by_file_id(self):
        attachments = [Attachment('blob.png', 'blob.png', './attachments/my-page/blob.png', file_id='abc123')]
        html = '<img data-fileid="abc123" alt="blob image" />'
        assert normalize(html, attachments=attachments) == (
            '<img src="./attachments/my-page/blob.png" alt="blob image" />'
        )

    def test_blob_image_without_alt_uses_file_name(self):
        attachments = [Attachment('my shot.png', 'my_shot.png', './attachments/test/my_shot.png', file_id='f1')]
        html = '<p><img src="blob:https://x/1" data-fileid="f1" /></p>'
        assert normalize(html, 'test', attachments) == (
            '<p><img src="./attachments/test/my_shot.png" alt="my_shot.png" /></p>'
        )

    def test_unknown_blob_image_kept(self):
        attachments = [Attachment('other.png', 'other.png', './other.png', file_id='other')]
        html = '<img data-fileid="notfound" alt="test" />'
        assert 'data-fileid="notfound"' in normalize(html, 'test', attachments)


class TestDecorations:
    """Test removal of editor decorations."""

    def test_svg_removed(self):
        assert normalize('<p>Text<svg class="icon"><path d="M0 0"/></svg>More text</p>') == '<p>TextMore text</p>'

    def test_heading_anchor_wrapper_removed(self):
        assert normalize('<h1><span class="heading-anchor-wrapper">Heading</span></h1>') == '<h1></h1>'

    def test_anchor_button_removed(self):
        assert normalize('<button data-testid="anchor-button">Copy link</button>') == ''

    def test_visually_hidden_span_removed(self):
        assert normalize('<span data-testid="visually-hidden">Hidden text</span>') == ''

    def test_nested_decorations_do_not_leak_closing_tags(self):
        html = (
            '<h2>Title<span class="heading-anchor-wrapper">'
            '<button data-testid="anchor-button"><svg><path/></svg>'
            '<span data-testid="visually-hidden">Copy</span></button></span></h2>'
        )
        assert normalize(html) == '<h2>Title</h2>'

    def test_other_spans_kept(self):
        assert normalize('<span class="status">OK</span>') == '<span class="status">OK</span>'


class TestPanels:
    """Test info/note/warning/tip panels."""

    @pytest.mark.parametrize('name,label', [
        ('info', 'INFO'),
        ('warning', 'WARNING'),
        ('note', 'NOTE'),
        ('tip', 'TIP'),
    ])
    def test_macro_panels(self, name, label):
        html = (
            f'<ac:structured-macro ac:name="{name}"><ac:rich-text-body>'
            f'{name.title()} content</ac:rich-text-body></ac:structured-macro>'
        )
        assert normalize(html) == f'<blockquote>**{label}:** {name.title()} content</blockquote>'

    def test_panel_body_whitespace_trimmed(self):
        html = '<ac:structured-macro ac:name="info"><ac:rich-text-body>\n  Body\n</ac:rich-text-body></ac:structured-macro>'
        assert normalize(html) == '<blockquote>**INFO:** Body</blockquote>'

    def test_panel_keeps_nested_html(self):
        html = (
            '<ac:structured-macro ac:name="info"><ac:rich-text-body><p><strong>Important:</strong> '
            'This is <em>info</em></p></ac:rich-text-body></ac:structured-macro>'
        )
        result = normalize(html)
        assert result.startswith('<blockquote>**INFO:**')
        assert '<strong>Important:</strong>' in result

    def test_editor_panel(self):
        html = (
            '<div class="ak-editor-panel" data-panel-type="info">'
            '<div class="ak-editor-panel__content">Panel content</div></div>'
        )
        assert normalize(html) == '<blockquote>**INFO:** Panel content</blockquote>'

    def test_editor_panel_warning(self):
        html = (
            '<div class="ak-editor-panel" data-panel-type="warning">'
            '<div class="ak-editor-panel__content">Warning message</div></div>'
        )
        assert normalize(html) == '<blockquote>**WARNING:** Warning message</blockquote>'

    def test_editor_panel_unknown_type_uses_raw_type(self):
        html = (
            '<div class="ak-editor-panel" data-panel-type="success">'
            '<div class="ak-editor-panel__content">Done</div></div>'
        )
        assert normalize(html) == '<blockquote>**success:** Done</blockquote>'

    def test_panel_inside_panel(self):
        html = (
            '<ac:structured-macro ac:name="note"><ac:rich-text-body>Outer '
            '<ac:structured-macro ac:name="tip"><ac:rich-text-body>Inner</ac:rich-text-body>'
            '</ac:structured-macro></ac:rich-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<blockquote>**NOTE:** Outer <blockquote>**TIP:** Inner</blockquote></blockquote>'

    def test_editor_panel_with_nested_divs(self):
        html = (
            '<div class="ak-editor-panel" data-panel-type="note"><div class="ak-editor-panel__icon"></div>'
            '<div class="ak-editor-panel__content"><div>First</div><div>Second</div></div></div><p>After</p>'
        )
        assert normalize(html) == '<blockquote>**NOTE:** <div>First</div><div>Second</div></blockquote><p>After</p>'


class TestCodeMacros:
    """Test code macro conversion."""

    def test_code_with_language(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:parameter ac:name="language">javascript</ac:parameter>'
            '<ac:plain-text-body><![CDATA[console.log("hello");]]></ac:plain-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<pre><code class="language-javascript">console.log("hello");</code></pre>'

    def test_code_without_language(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:plain-text-body><![CDATA[plain code]]>'
            '</ac:plain-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<pre><code class="language-">plain code</code></pre>'

    def test_html_in_code_is_escaped(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:plain-text-body><![CDATA[<div>HTML</div>]]>'
            '</ac:plain-text-body></ac:structured-macro>'
        )
        assert '&lt;div&gt;HTML&lt;/div&gt;' in normalize(html)

    def test_tabs_become_newlines(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:plain-text-body><![CDATA[line1\tline2\tline3]]>'
            '</ac:plain-text-body></ac:structured-macro>'
        )
        assert 'line1\nline2\nline3' in normalize(html)

    def test_xml_code_keeps_quotes(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:parameter ac:name="language">xml</ac:parameter>'
            '<ac:plain-text-body><![CDATA[<element attr="value" />]]></ac:plain-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<pre><code class="language-xml">&lt;element attr="value" /&gt;</code></pre>'

    def test_special_characters(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:plain-text-body><![CDATA[a < b && c > d]]>'
            '</ac:plain-text-body></ac:structured-macro>'
        )
        assert 'a &lt; b &amp;&amp; c &gt; d' in normalize(html)

    def test_multiline_template(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:parameter ac:name="language">xml</ac:parameter>'
            '<ac:plain-text-body><![CDATA[<div class="widget">\n<label data-bind="text: name"></label>\n'
            '<input data-bind="value: current" />\n</div>]]></ac:plain-text-body></ac:structured-macro>'
        )
        result = normalize(html)
        assert '&lt;div class=' in result
        assert '&lt;label' in result
        assert '&lt;input' in result

    def test_split_cdata_is_rejoined(self):
        html = (
            '<ac:structured-macro ac:name="code"><ac:plain-text-body>'
            '<![CDATA[x = a[b[0]]]]><![CDATA[> 1]]></ac:plain-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<pre><code class="language-">x = a[b[0]]&gt; 1</code></pre>'

    def test_language_parameter_after_other_parameters(self):
        html = (
            '<ac:structured-macro ac:name="code" ac:schema-version="1">'
            '<ac:parameter ac:name="title">Example</ac:parameter>'
            '<ac:parameter ac:name="language">python</ac:parameter>'
            '<ac:plain-text-body><![CDATA[print(1)]]></ac:plain-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<pre><code class="language-python">print(1)</code></pre>'


class TestResidualMacros:
    """Test removal of unsupported macros."""

    def test_self_closing_macro_removed(self):
        result = normalize('<p>Before</p><ac:structured-macro ac:name="toc" /><p>After</p>')
        assert 'toc' not in result
        assert 'Before' in result
        assert 'After' in result

    def test_unknown_macro_keeps_images(self):
        html = (
            '<ac:structured-macro ac:name="unknown"><ac:rich-text-body><img src="test.png" />'
            '</ac:rich-text-body></ac:structured-macro>'
        )
        assert normalize(html) == '<img src="test.png" />'

    def test_gallery_keeps_every_image(self):
        html = (
            '<ac:structured-macro ac:name="gallery"><ac:rich-text-body><img src="img1.png" />'
            '<img src="img2.png" /></ac:rich-text-body></ac:structured-macro>'
        )
        result = normalize(html)
        assert '<img src="img1.png" />' in result
        assert '<img src="img2.png" />' in result

    def test_nested_unknown_macros(self):
        html = (
            '<p>A</p><ac:structured-macro ac:name="expand"><ac:rich-text-body>'
            '<ac:structured-macro ac:name="status"><ac:parameter ac:name="title">Done</ac:parameter>'
            '</ac:structured-macro><ac:image><ri:attachment ri:filename="x.png" /></ac:image>'
            '</ac:rich-text-body></ac:structured-macro><p>B</p>'
        )
        assert normalize(html) == '<p>A</p><img src="./attachments/my-page/x.png" alt="x.png" /><p>B</p>'

    def test_parameters_removed(self):
        assert normalize('<ac:parameter ac:name="test">value</ac:parameter>') == ''


class TestTables:
    """Test table cleanup."""

    def test_colgroup_removed(self):
        html = '<table><colgroup><col width="100" /></colgroup><tbody><tr><td>Cell</td></tr></tbody></table>'
        result = normalize(html)
        assert 'colgroup' not in result
        assert '<td>Cell</td>' in result

    def test_table_attributes_removed(self):
        result = normalize('<table data-layout="default" class="confluenceTable"><tr><td>Cell</td></tr></table>')
        assert '<table>' in result
        assert 'data-layout' not in result

    def test_cell_attributes_removed(self):
        html = '<table><tr><td class="confluenceTd" style="color:red">Cell</td></tr></table>'
        assert '<td>Cell</td>' in normalize(html)

    def test_single_paragraph_unwrapped(self):
        assert '<td>Cell content</td>' in normalize('<table><tr><td><p>Cell content</p></td></tr></table>')

    def test_paragraph_with_attributes_unwrapped(self):
        html = '<table><tr><td><p class="some-class">Cell content</p></td></tr></table>'
        assert '<td>Cell content</td>' in normalize(html)

    def test_pre_in_cell_untouched(self):
        assert '<pre>code</pre>' in normalize('<table><tr><td><pre>code</pre></td></tr></table>')

    def test_paragraph_next_to_pre(self):
        result = normalize('<table><tr><td><p>line1</p><pre>code</pre><p>line2</p></td></tr></table>')
        assert '<pre>code</pre>' in result
        assert 'line1' in result
        assert 'line2' in result

    def test_paragraphs_joined_with_line_breaks(self):
        assert 'Line 1<br/>Line 2' in normalize('<table><tr><td><p>Line 1</p><p>Line 2</p></td></tr></table>')

    def test_header_row_moved_to_thead(self):
        html = (
            '<table><tbody><tr><th>Header 1</th><th>Header 2</th></tr>'
            '<tr><td>Cell 1</td><td>Cell 2</td></tr></tbody></table>'
        )
        assert normalize(html) == (
            '<table><thead><tr><th>Header 1</th><th>Header 2</th></tr></thead>'
            '<tbody><tr><td>Cell 1</td><td>Cell 2</td></tr></tbody></table>'
        )

    def test_only_leading_header_rows_move(self):
        html = (
            '<table><tbody><tr><th>A</th></tr><tr><th>B</th></tr>'
            '<tr><td>1</td></tr><tr><th>C</th></tr></tbody></table>'
        )
        assert normalize(html) == (
            '<table><thead><tr><th>A</th></tr><tr><th>B</th></tr></thead>'
            '<tbody><tr><td>1</td></tr><tr><th>C</th></tr></tbody></table>'
        )

    def test_row_header_column_not_moved(self):
        html = '<table><tbody><tr><th>Name</th><td>Value</td></tr></tbody></table>'
        assert '<thead>' not in normalize(html)

    def test_nested_tables(self):
        html = '<table><tr><td><table><tr><td><p>Nested</p></td></tr></table></td></tr></table>'
        assert normalize(html) == '<table><tr><td><table><tr><td>Nested</td></tr></table></td></tr></table>'

    def test_param_tag_after_table_untouched(self):
        html = '<table><tr><td><p>text</p></td></tr></table><param name="test" />'
        assert normalize(html).endswith('<param name="test" />')


class TestLinks:
    """Test page links."""

    def test_link_body(self):
        html = '<ac:link><ri:page ri:content-title="Target Page" /><ac:link-body>Link Text</ac:link-body></ac:link>'
        assert normalize(html) == '<a href="CONFLUENCE_LINK:target-page">Link Text</a>'

    def test_plain_text_link_body(self):
        html = (
            '<ac:link><ri:page ri:content-title="Target Page" />'
            '<ac:plain-text-link-body><![CDATA[Link Text]]></ac:plain-text-link-body></ac:link>'
        )
        assert normalize(html) == '<a href="CONFLUENCE_LINK:target-page">Link Text</a>'

    def test_title_as_text(self):
        html = '<ac:link><ri:page ri:content-title="Target Page" /></ac:link>'
        assert normalize(html) == '<a href="CONFLUENCE_LINK:target-page">Target Page</a>'

    def test_special_characters_in_title(self):
        html = '<ac:link><ri:page ri:content-title="AUI & CUI Interface (Work in progress)" /></ac:link>'
        assert normalize(html) == (
            '<a href="CONFLUENCE_LINK:aui-cui-interface-work-in-progress">'
            'AUI & CUI Interface (Work in progress)</a>'
        )

    def test_entity_in_title_is_decoded_for_slug(self):
        html = '<ac:link><ri:page ri:content-title="Q&amp;A" /></ac:link>'
        assert normalize(html) == '<a href="CONFLUENCE_LINK:q-a">Q&amp;A</a>'

    @pytest.mark.parametrize('title,slug', [
        ('Discussion : connexions entre AUI', 'discussion-connexions-entre-aui'),
        ('HTML templates / AUI & CUI Interface (Work in progress)',
         'html-templates-aui-cui-interface-work-in-progress'),
    ])
    def test_titles_with_punctuation(self, title, slug):
        html = f'<ac:link><ri:page ri:content-title="{title}" /></ac:link>'
        assert f'CONFLUENCE_LINK:{slug}' in normalize(html)

    def test_attachment_link_left_alone(self):
        html = '<ac:link><ri:attachment ri:filename="doc.pdf" /></ac:link>'
        assert normalize(html) == html


class TestLoadableWrappers:
    """Test loadable wrapper spans."""

    def test_wrapper_unwrapped(self):
        assert normalize('<span data-loadable-vc-wrapper="true">Content inside</span>') == 'Content inside'

    def test_nested_wrappers(self):
        html = (
            '<span data-loadable-vc-wrapper="true">A <span class="keep">B</span> '
            '<span data-loadable-vc-wrapper="true">C</span></span>'
        )
        assert normalize(html) == 'A <span class="keep">B</span> C'


class TestDialectNormalizer(unittest.TestCase):
    """Test normalizer behaviour across rules."""

    def setUp(self):
        self.normalizer = DialectNormalizer()

    def test_empty_document(self):
        self.assertEqual(self.normalizer.normalize('', 'page'), '')
        self.assertEqual(self.normalizer.normalize(None, 'page'), '')

    def test_plain_html_passes_through(self):
        html = '<h1>Title</h1><p>Some <strong>text</strong></p>'
        self.assertEqual(self.normalizer.normalize(html, 'page'), html)

    def test_malformed_markup_does_not_raise(self):
        for html in (
            '<p>Text without closing tag',
            '<ac:structured-macro ac:name="info"><ac:rich-text-body>never closed',
            '<table><tr><td><p>open',
            '<ac:link><ri:page ri:content-title="X" />',
            '<svg><path/>',
        ):
            self.assertIsInstance(self.normalizer.normalize(html, 'page'), str)

    def test_stats_cover_every_rule(self):
        html = (
            '<ac:structured-macro ac:name="info"><ac:rich-text-body>Hi</ac:rich-text-body></ac:structured-macro>'
            '<ac:link><ri:page ri:content-title="Other" /></ac:link>'
        )
        self.normalizer.normalize(html, 'page')
        self.assertEqual(set(self.normalizer.last_stats), set(RULE_NAMES))
        self.assertEqual(self.normalizer.last_stats['panels'], 1)
        self.assertEqual(self.normalizer.last_stats['links'], 1)
        self.assertEqual(self.normalizer.last_stats['code_macros'], 0)

    def test_code_inside_panel(self):
        html = (
            '<ac:structured-macro ac:name="tip"><ac:rich-text-body><p>Run:</p>'
            '<ac:structured-macro ac:name="code"><ac:parameter ac:name="language">bash</ac:parameter>'
            '<ac:plain-text-body><![CDATA[ls -la]]></ac:plain-text-body></ac:structured-macro>'
            '</ac:rich-text-body></ac:structured-macro>'
        )
        self.assertEqual(
            self.normalizer.normalize(html, 'page'),
            '<blockquote>**TIP:** <p>Run:</p><pre><code class="language-bash">ls -la</code></pre></blockquote>'
        )


if __name__ == '__main__':
    unittest.main()
