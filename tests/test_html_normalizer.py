"""
Tests for HTML to text normalization
"""

import re
import unittest

from email_service.modules.form_fields import extract_form_fields
from email_service.modules.html_normalizer import (
    MAX_HTML_SIZE,
    normalize_text,
    process_html,
)

TAG_RE = re.compile(r"<[a-zA-Z/][^>]*>")


class TestProcessHtml(unittest.TestCase):

    def test_empty_input(self):
        self.assertEqual(process_html(""), "")
        self.assertEqual(process_html("   \n\t "), "")
        self.assertEqual(process_html(None), "")

    def test_paragraphs_become_blank_lines(self):
        html = "<p>Eerste alinea</p><p>Tweede alinea</p>"
        self.assertEqual(process_html(html), "Eerste alinea\n\nTweede alinea")

    def test_line_breaks(self):
        self.assertEqual(process_html("regel 1<br>regel 2<BR/>regel 3<br />"),
                         "regel 1\nregel 2\nregel 3")

    def test_block_tags_are_case_insensitive(self):
        self.assertEqual(process_html("<DIV>a</DIV><Div>b</Div>"), "a\nb")

    def test_script_style_and_comments_removed(self):
        html = (
            "<style>p { color: red; }</style>"
            "<script type='text/javascript'>alert('x')</script>"
            "<!-- verborgen -->"
            "<p>Zichtbaar</p>"
        )
        self.assertEqual(process_html(html), "Zichtbaar")

    def test_emphasis_markers(self):
        self.assertEqual(process_html("<em>cursief</em> en <strong>vet</strong>"),
                         "_cursief_ en *vet*")
        self.assertEqual(process_html("<i>x</i><b>y</b>"), "_x_*y*")

    def test_similar_tags_are_not_emphasis(self):
        self.assertEqual(process_html("<body><img src='a.png'>tekst</body>"), "tekst")

    def test_entities(self):
        self.assertEqual(process_html("Tom &amp; Jerry&nbsp;&euro;5 &#8230;"),
                         "Tom & Jerry €5 ...")

    def test_unknown_entities_pass_through(self):
        self.assertEqual(process_html("a &madeup; b"), "a &madeup; b")

    def test_whitespace_is_collapsed(self):
        html = "<p>  veel    spaties \t hier  </p>\n\n\n\n<p>einde</p>"
        self.assertEqual(process_html(html), "veel spaties hier\n\neinde")

    def test_table_layout(self):
        html = "<table><tr><td>Naam</td><td>Jan</td></tr><tr><td>Rol</td><td>Loper</td></tr></table>"
        self.assertEqual(process_html(html), "Naam Jan\nRol Loper")

    def test_adjacent_cells_stay_separate(self):
        self.assertEqual(process_html("<tr><td>Naam</td><td>Jan</td></tr>"), "Naam Jan")
        self.assertEqual(process_html("<TR><TH>Rol</TH><TD>Loper</TD></TR>"), "Rol Loper")

    def test_list_items_get_bullets(self):
        html = "<ul><li>een</li><li class='x'>twee</li></ul>"
        self.assertEqual(process_html(html), "• een\n• twee")

    def test_link_tag_is_not_a_list_item(self):
        self.assertEqual(process_html("<link rel='stylesheet'>tekst"), "tekst")

    def test_definition_list_reads_as_form_fields(self):
        html = "<dl><dt>Naam</dt><dd>Jan</dd><dt>E-mail</dt><dd>jan@voorbeeld.nl</dd></dl>"
        text = process_html(html)

        self.assertEqual(text, "Naam: Jan\nE-mail: jan@voorbeeld.nl")
        self.assertEqual(extract_form_fields(text), {"Naam": "Jan", "E-mail": "jan@voorbeeld.nl"})

    def test_horizontal_rule_and_cite(self):
        self.assertEqual(process_html("boven<hr>onder<HR class='x'/>einde"),
                         "boven\n---\nonder\n---\neinde")
        self.assertEqual(process_html("<cite>Bron</cite>tekst"), "Bron tekst")

    def test_page_sections(self):
        html = "<header>Kop</header><address>Straat 1</address><figure>Foto</figure><footer>Voet</footer>"
        self.assertEqual(process_html(html), "Kop\n\nStraat 1\n\nFoto\n\nVoet")

    def test_escaped_markup_is_decoded_to_literal_text(self):
        # Entities are decoded after tag stripping: the output is plain text, not HTML
        result = process_html("&lt;script&gt;alert(1)&lt;/script&gt;")
        self.assertEqual(result, "<script>alert(1)</script>")

    def test_no_tags_survive(self):
        html = (
            "<html><head><title>T</title></head><body>"
            "<h1>Kop</h1><ul><li>een</li><li>twee</li></ul>"
            "<section><article><form><pre>code</pre></form></article></section>"
            "<span class='x'>inline</span><a href='https://x'>link</a>"
            "</body></html>"
        )
        self.assertIsNone(TAG_RE.search(process_html(html)))

    def test_never_more_than_two_newlines(self):
        html = "<p></p>" * 20 + "tekst" + "<br>" * 20 + "<h1>kop</h1>" * 5
        self.assertNotIn("\n\n\n", process_html(html))

    def test_oversized_input_is_truncated(self):
        html = "a" * MAX_HTML_SIZE + "<p>TAIL</p>"
        result = process_html(html)
        self.assertEqual(len(result), MAX_HTML_SIZE)
        self.assertNotIn("TAIL", result)


class TestNormalizeText(unittest.TestCase):

    def test_crlf_and_trailing_spaces(self):
        self.assertEqual(normalize_text("a  b \r\n\r\n\r\n\r\nc\t\td  "), "a b\n\nc d")

    def test_blank_input(self):
        self.assertEqual(normalize_text(" \n "), "")


if __name__ == '__main__':
    unittest.main()
