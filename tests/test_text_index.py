import sys
from pathlib import Path

import lxml.html

sys.path.insert(0, str(Path(__file__).parent.parent))

from cliptrace.locator.text_index import (
    DocumentTextIndex,
    TextLeaf,
    flattened_text,
    iter_text_leaves,
    locate_leaf_at_offset,
)


def _doc(body):
    return lxml.html.document_fromstring(f"<html><head><style>p {{ color: red }}</style></head><body>{body}</body></html>")


def test_leaves_in_document_order():
    root = _doc("<p>A<b>B</b>C</p><div>D<i>E</i></div>F")

    index = DocumentTextIndex.build(root)

    assert [leaf.text for leaf in index] == ["A", "B", "C", "D", "E", "F"]


def test_script_style_and_comment_content_is_skipped_but_tails_kept():
    root = _doc("<p>keep</p><script>var x = 1;</script>after script<!-- hidden -->after comment")

    texts = [leaf.text for leaf in DocumentTextIndex.build(root)]

    assert texts == ["keep", "after script", "after comment"]


def test_whitespace_only_leaves_are_dropped():
    root = _doc("<div>\n   <p>x</p>\n   </div>")

    assert [leaf.text for leaf in DocumentTextIndex.build(root)] == ["x"]
    assert len(list(iter_text_leaves(root.find('body'), include_blank=True))) > 1


def test_leaf_normalized_form_is_memoized():
    root = _doc("<p>  Mixed   CASE </p>")
    leaf = DocumentTextIndex.build(root)[0]

    assert leaf.normalized == "mixed case"
    assert leaf.normalized is leaf.normalized


def test_leaf_equality_by_element_and_kind():
    root = _doc("<p>Hi <b>there</b> you</p>")
    bold = root.xpath('//b')[0]

    assert TextLeaf(bold) == TextLeaf(bold)
    assert TextLeaf(bold) != TextLeaf(bold, is_tail=True)
    assert TextLeaf(bold, is_tail=True).parent is bold.getparent()


def test_iter_containing_and_find_first():
    root = _doc("<p>alpha beta</p><p>gamma</p><p>Beta again</p>")
    index = DocumentTextIndex.build(root)

    hits = [(leaf.text, position) for leaf, position in index.iter_containing("beta")]

    assert hits == [("alpha beta", 6), ("Beta again", 0)]
    assert index.find_first("gamma")[0].text == "gamma"
    assert index.find_first("missing") is None


def test_windows_shrink_at_the_end():
    root = _doc("".join(f"<span>{i}</span>" for i in range(5)))
    index = DocumentTextIndex.build(root)

    windows = [(start, [leaf.text for leaf in window]) for start, window in index.windows(3)]

    assert windows[0] == (0, ["0", "1", "2"])
    assert windows[-1] == (4, ["4"])
    assert len(windows) == 5


def test_flattened_text():
    root = _doc("<p>Hello <b>big</b> world</p>")
    assert flattened_text(root.xpath('//p')[0]) == "Hello big world"


def test_locate_leaf_at_offset():
    root = _doc("<p>Hello <b>big</b> world</p>")
    paragraph = root.xpath('//p')[0]

    assert locate_leaf_at_offset(paragraph, 3).text == "Hello "
    assert locate_leaf_at_offset(paragraph, 8).text == "big"
    assert locate_leaf_at_offset(paragraph, 12).text == " world"


def test_locate_leaf_at_offset_falls_back_to_leading_text():
    root = _doc("<p>short</p>")
    paragraph = root.xpath('//p')[0]

    leaf = locate_leaf_at_offset(paragraph, 500)

    assert leaf == TextLeaf(paragraph)
