"""Tests for backtick-escaping of tag-shaped text."""

import pytest

from converters.text_protection import TextProtector, protect_text


class TestRiskyIdentifiers:
    """Test escaping of identifier-like pseudo tags."""

    @pytest.mark.parametrize('identifier', [
        'Type', 'Entity', 'EntityReference', 'EntityCollection', 'DomainModel',
        'AbstractIU', 'CUI', 'AUI', 'ValueType', 'ClickEvent',
    ])
    def test_identifier_wrapped(self, identifier):
        assert protect_text(f'The <{identifier}> element') == f'The `<{identifier}>` element'

    def test_several_identifiers(self):
        assert protect_text('The <CUI> and <AUI> models interact') == 'The `<CUI>` and `<AUI>` models interact'

    def test_unknown_suffix_untouched(self):
        assert protect_text('Compare a <b and c> d') == 'Compare a <b and c> d'
        assert protect_text('See <Foo> here') == 'See <Foo> here'


class TestPlainTags:
    """Test escaping of HTML tag names in prose."""

    def test_div(self):
        assert protect_text('Use <div> for containers') == 'Use `<div>` for containers'

    def test_list_tags(self):
        result = protect_text('Use <ul> and <li> for lists')
        assert '`<ul>`' in result
        assert '`<li>`' in result

    def test_adjacent_tags_stay_separate(self):
        result = protect_text('Use <ol><li> for ordered lists')
        assert result == 'Use `<ol>` `<li>` for ordered lists'
        assert '``' not in result

    def test_closing_tag_sequence(self):
        result = protect_text('Text </p></li><li><p> more text')
        for tag in ('`</p>`', '`</li>`', '`<li>`', '`<p>`'):
            assert tag in result
        assert '``' not in result

    def test_tags_with_attributes(self):
        assert protect_text('Use <div class="container"> for styling') == 'Use `<div class="container">` for styling'

    @pytest.mark.parametrize('tag', [
        'form', 'input', 'button', 'select', 'textarea', 'label',
        'header', 'footer', 'section', 'article', 'nav', 'aside', 'h1', 'h6',
    ])
    def test_tag_names(self, tag):
        assert f'`<{tag}>`' in protect_text(f'Use <{tag}> here')

    def test_case_insensitive(self):
        assert protect_text('Old <DIV> markup') == 'Old `<DIV>` markup'

    def test_similar_names_untouched(self):
        assert protect_text('A <param> or <tablet> or <divider>') == 'A <param> or <tablet> or <divider>'


class TestProtectedRegions:
    """Test that code and HTML tables are never modified."""

    def test_fenced_code_untouched(self):
        markdown = 'Use <div> here\n\n```html\n<div>content</div>\n<Type>\n```\n\nAfter <span>'
        result = protect_text(markdown)
        assert '```html\n<div>content</div>\n<Type>\n```' in result
        assert result.startswith('Use `<div>` here')
        assert result.endswith('After `<span>`')

    def test_tilde_fence_untouched(self):
        markdown = '~~~\n<li>\n~~~'
        assert protect_text(markdown) == markdown

    def test_unterminated_fence_untouched(self):
        markdown = 'Intro\n\n```\n<div> never closed'
        assert protect_text(markdown) == markdown

    def test_inline_code_untouched(self):
        markdown = 'Write `<div class="x">` or `a <li> b` inline'
        assert protect_text(markdown) == markdown

    def test_html_table_untouched(self):
        markdown = 'Before\n\n<table><tbody><tr><td><ul><li>Item</li></ul></td></tr></tbody></table>\n\nAfter'
        assert protect_text(markdown) == markdown

    def test_nested_html_tables_untouched(self):
        table = '<table><tr><td><table><tr><td><p>Nested</p></td></tr></table></td></tr></table>'
        markdown = f'{table}\n\nUse <p> after'
        assert protect_text(markdown) == f'{table}\n\nUse `<p>` after'

    def test_table_tag_in_prose_before_real_table(self):
        table = '<table><tbody><tr><td><ul><li>x</li></ul></td></tr></tbody></table>'
        markdown = f'Use the <table> element.\n\n{table}'
        result = protect_text(markdown)
        assert result == f'Use the `<table>` element.\n\n{table}'
        assert protect_text(result) == result

    def test_unclosed_table_tag_does_not_stop_later_tables(self):
        first = '<table><tr><td><p>One</p></td></tr></table>'
        second = '<table><tr><td><p>Two</p></td></tr></table>'
        markdown = f'{first}\n\nA <table> opener\n\n{second}'
        assert protect_text(markdown) == f'{first}\n\nA `<table>` opener\n\n{second}'

    def test_text_and_table(self):
        markdown = 'Use <div> for layout\n\n<table><tbody><tr><td>Cell</td></tr></tbody></table>'
        result = protect_text(markdown)
        assert '`<div>`' in result
        assert '<td>Cell</td>' in result
        assert '`<table>`' not in result


class TestTextProtector:
    """Test protector behaviour as a whole."""

    def setup_method(self):
        self.protector = TextProtector()

    def test_empty(self):
        assert self.protector.protect('') == ''
        assert self.protector.protect(None) == ''

    def test_no_tags_unchanged(self):
        markdown = '# Title\n\nJust text with a < b and c > d.'
        assert self.protector.protect(markdown) == markdown

    @pytest.mark.parametrize('markdown', [
        'Use <ol><li> for ordered lists',
        'The <EntityReference> points to <div class="a"></div>',
        'Text </p></li><li><p> more',
        '```\n<div>\n```\n\n<table><tr><td>x</td></tr></table>\n\nSee <span>',
    ])
    def test_idempotent(self, markdown):
        once = self.protector.protect(markdown)
        assert self.protector.protect(once) == once

    def test_no_placeholder_leaks(self):
        markdown = '```\na\n```\n\n<table><tr><td>t</td></tr></table>\n\n`code` and <div>'
        result = self.protector.protect(markdown)
        assert '\x00' not in result

    def test_stats(self):
        markdown = '```\n<div>\n```\n\n<table><tr><td>t</td></tr></table>\n\nThe <Type> in a <div>'
        self.protector.protect(markdown)
        assert self.protector.last_stats == {
            'code_blocks': 1,
            'html_tables': 1,
            'identifiers_escaped': 1,
            'tags_escaped': 1,
        }
