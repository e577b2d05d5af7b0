"""
Tests for the relocation cascade: strategy priority, disambiguation and the
scroll-to-top fallback.
"""
import logging
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import lxml.html

sys.path.insert(0, str(Path(__file__).parent.parent))

from cliptrace.locator.cascade import RelocationCascade
from cliptrace.locator.fingerprint import build_anchor, select_text
from cliptrace.locator.highlighter import HighlightManager, MarkState
from cliptrace.locator.models import ResolvedSpan, SelectionAnchor
from cliptrace.locator.scheduler import VirtualScheduler
from cliptrace.locator.strategies import (
    AddressGuidedStrategy,
    FuzzySimilarityStrategy,
    PartialMatchStrategy,
    ScoredExactMatchStrategy,
    SurroundingTextStrategy,
    WindowedSearchStrategy,
    default_strategies,
)
from cliptrace.locator.text_index import DocumentTextIndex, TextLeaf
from cliptrace.locator.viewport import DocumentViewport


def _doc(body):
    return lxml.html.document_fromstring(f"<html><body>{body}</body></html>")


def _mock_strategy(name, spans=()):
    strategy = MagicMock()
    strategy.name = name
    strategy.candidates.side_effect = lambda anchor, index, root: iter(list(spans))
    return strategy


class CascadeTestCase(unittest.TestCase):

    def _cascade(self, root, strategies=None):
        self.scheduler = VirtualScheduler()
        self.viewport = DocumentViewport(root)
        self.highlighter = HighlightManager(self.scheduler, self.viewport)
        return RelocationCascade(self.highlighter, strategies=strategies)


class TestStrategyPriority(CascadeTestCase):

    def test_default_order(self):
        names = [strategy.name for strategy in default_strategies()]
        self.assertEqual(names, ["address", "scored_exact", "first_line", "windowed",
                                 "fuzzy", "surrounding_text", "partial"])

    def test_first_success_stops_the_cascade(self):
        root = _doc("<p>The quick brown fox</p>")
        anchor = build_anchor(select_text(root, "quick"))
        later = _mock_strategy("later")
        cascade = self._cascade(root, strategies=[AddressGuidedStrategy(), later])

        result = cascade.relocate(anchor, root)

        self.assertTrue(result.success)
        self.assertEqual(result.strategy, "address")
        later.candidates.assert_not_called()

    def test_declining_strategy_falls_through_to_the_next(self):
        root = _doc("<p>alpha beta</p>")
        leaf = TextLeaf(root.find('.//p'))
        declining = _mock_strategy("declines")
        winning = _mock_strategy("wins", [ResolvedSpan.whole_leaf(leaf, "wins")])
        never = _mock_strategy("never")
        cascade = self._cascade(root, strategies=[declining, winning, never])

        result = cascade.relocate(SelectionAnchor(original_text="alpha beta"), root)

        self.assertEqual(result.strategy, "wins")
        self.assertEqual(result.attempted, ["declines", "wins"])
        declining.candidates.assert_called_once()
        never.candidates.assert_not_called()

    def test_rejected_candidate_moves_to_the_next_candidate(self):
        root = _doc("<p>alpha beta</p>")
        leaf = TextLeaf(root.find('.//p'))
        strategy = _mock_strategy("two_candidates", [
            ResolvedSpan(leaf, 0, 500, "two_candidates"),
            ResolvedSpan(leaf, 6, 4, "two_candidates"),
        ])
        cascade = self._cascade(root, strategies=[strategy])

        result = cascade.relocate(SelectionAnchor(original_text="beta"), root)

        self.assertTrue(result.success)
        self.assertEqual(result.mark.text, "beta")

    def test_failing_strategy_counts_as_a_decline(self):
        root = _doc("<p>alpha beta</p>")
        broken = _mock_strategy("broken")
        broken.candidates.side_effect = RuntimeError("boom")
        winning = _mock_strategy("wins", [ResolvedSpan.whole_leaf(TextLeaf(root.find('.//p')), "wins")])
        cascade = self._cascade(root, strategies=[broken, winning])

        result = cascade.relocate(SelectionAnchor(original_text="alpha"), root)

        self.assertEqual(result.strategy, "wins")

    def test_second_best_match_is_tried_when_best_cannot_be_highlighted(self):
        root = _doc("<p>Your recent order #12345 confirmed by email.</p>"
                    "<p>Old order #12345 confirmed last week.</p>")
        anchor = SelectionAnchor(original_text="order #12345 confirmed", text_before="your recent ", parent_tag="P")
        highlighter = MagicMock()
        mark = MagicMock()
        highlighter.apply.side_effect = [None, mark]
        cascade = RelocationCascade(highlighter, strategies=[ScoredExactMatchStrategy(), _mock_strategy("later")])

        result = cascade.relocate(anchor, root, wait_for_stable=False)

        self.assertEqual(result.strategy, "scored_exact")
        self.assertIs(result.mark, mark)
        second_span = highlighter.apply.call_args_list[1].args[0]
        self.assertEqual(second_span.detail, "rank=2 score=22")
        self.assertTrue(second_span.leaf.text.startswith("Old"))

    def test_previous_mark_is_completed_before_relocating(self):
        root = _doc("<p>The quick brown fox</p><p>jumps over the lazy dog</p>")
        first_anchor = build_anchor(select_text(root, "quick"))
        second_anchor = build_anchor(select_text(root, "lazy"))
        cascade = self._cascade(root)

        first = cascade.relocate(first_anchor, root)
        second = cascade.relocate(second_anchor, root)

        self.assertEqual(first.mark.state, MarkState.CANCELLED)
        self.assertEqual(second.mark.text, "lazy")
        self.assertEqual(len(root.xpath('//mark')), 1)


class TestScenarios(CascadeTestCase):

    def test_address_guided_exact_slice(self):
        root = _doc("<div><p>Intro</p><p>The quick brown fox</p></div>")
        anchor = SelectionAnchor(structural_address="/html/body/div[1]/p[2]", offset=4, length=5,
                                 original_text="quick")
        cascade = self._cascade(root)

        result = cascade.relocate(anchor, root)

        self.assertEqual(result.strategy, "address")
        self.assertEqual(result.attempted, ["address"])
        self.assertEqual(result.mark.text, "quick")
        self.assertIs(self.viewport.scrolled_to, result.mark.element)

    def test_context_score_picks_the_right_occurrence(self):
        root = _doc(
            "<section><p>Old order #12345 confirmed last week.</p></section>"
            "<section><p>Your recent order #12345 confirmed by email.</p></section>"
        )
        anchor = SelectionAnchor(text_before="your recent ", text_after=" by email.",
                                 length=len("order #12345 confirmed"),
                                 original_text="order #12345 confirmed")
        cascade = self._cascade(root)

        result = cascade.relocate(anchor, root)

        self.assertEqual(result.strategy, "scored_exact")
        second_p = root.xpath('//p')[1]
        self.assertIs(result.mark.element.getparent(), second_p)
        self.assertEqual(result.mark.text, "order #12345 confirmed")

    def test_first_line_prefix_tiers(self):
        root = _doc("<p>Alpha Charlie went home.</p>")
        anchor = SelectionAnchor(original_text="Alpha Bravo.", length=12)
        cascade = self._cascade(root)

        with self.assertLogs('cliptrace.locator.cascade', level=logging.INFO) as logs:
            result = cascade.relocate(anchor, root)

        self.assertEqual(result.strategy, "first_line")
        self.assertEqual(result.mark.text, "Alpha Charli")
        self.assertTrue(any("tier=5" in line for line in logs.output))

    def test_everything_declines_scrolls_to_top_once(self):
        root = _doc("<p>Completely different content here about trains.</p>")
        anchor = SelectionAnchor(original_text="The mitochondria is the powerhouse of the cell.")
        cascade = self._cascade(root)

        with self.assertLogs('cliptrace.locator.cascade', level=logging.WARNING) as logs:
            result = cascade.relocate(anchor, root)

        self.assertFalse(result.success)
        self.assertIsNone(result.mark)
        self.assertEqual(len(result.attempted), 7)
        self.assertEqual(self.viewport.scrolled_to_top, 1)
        self.assertEqual(root.xpath('//mark'), [])
        self.assertTrue(any("Cannot locate text" in line for line in logs.output))

    def test_stale_address_falls_back_to_text_search(self):
        captured = _doc("<p>Intro</p><p>The quick brown fox</p>")
        anchor = build_anchor(select_text(captured, "quick brown"))
        # Content above the selection was removed since capture
        current = _doc("<div><p>The quick brown fox</p></div>")
        cascade = self._cascade(current)

        result = cascade.relocate(anchor, current)

        self.assertEqual(result.strategy, "scored_exact")
        self.assertEqual(result.mark.text, "quick brown")

    def test_relocation_waits_for_the_page_to_settle(self):
        root = _doc("<p>The quick brown fox</p>")
        anchor = build_anchor(select_text(root, "quick"))
        cascade = self._cascade(root)

        cascade.relocate(anchor, root)

        self.assertEqual(self.scheduler.now(), 350)

    def test_original_text_override(self):
        root = _doc("<p>Some searchable sentence here</p>")
        cascade = self._cascade(root)

        result = cascade.relocate(SelectionAnchor(parent_tag="P"), root, original_text="searchable sentence")

        self.assertEqual(result.strategy, "scored_exact")
        self.assertEqual(result.mark.text, "searchable sentence")


class TestIndividualStrategies(unittest.TestCase):

    def _run(self, strategy, anchor, body):
        root = _doc(body)
        index = DocumentTextIndex.build(root)
        return list(strategy.candidates(anchor, index, root))

    def test_address_guided_rejects_mismatched_text(self):
        anchor = SelectionAnchor(structural_address="/html/body/p[1]", offset=0, length=5,
                                 original_text="Zebra stripes")

        self.assertEqual(self._run(AddressGuidedStrategy(), anchor, "<p>Hello world</p>"), [])

    def test_address_guided_clamps_to_leaf(self):
        anchor = SelectionAnchor(structural_address="/html/body/p[1]", offset=6, length=50,
                                 original_text="world and more")

        spans = self._run(AddressGuidedStrategy(), anchor, "<p>Hello world</p>")

        self.assertEqual([(s.start, s.length) for s in spans], [(6, 5)])

    def test_scored_exact_keeps_raw_whitespace_inside_the_match(self):
        anchor = SelectionAnchor(original_text="order #12345 confirmed", text_before="Your ")

        spans = self._run(ScoredExactMatchStrategy(), anchor, "<p>Your   order  #12345\n confirmed today</p>")

        span = spans[0]
        self.assertEqual(span.leaf.text[span.start:span.start + span.length], "order  #12345\n confirmed")

    def test_scored_exact_short_text_needs_context(self):
        # 10 base points only, short text threshold is 40
        anchor = SelectionAnchor(original_text="hello", text_before="nothing like this ")

        self.assertEqual(self._run(ScoredExactMatchStrategy(), anchor, "<p>hello there</p>"), [])

    def test_scored_exact_short_text_without_context_declines(self):
        anchor = SelectionAnchor(original_text="hello")

        self.assertEqual(self._run(ScoredExactMatchStrategy(), anchor, "<p>hello there</p><p>hello again</p>"), [])

    def test_scored_exact_yields_second_best_above_threshold(self):
        anchor = SelectionAnchor(original_text="order #12345 confirmed", text_before="your recent ", parent_tag="P")
        body = ("<p>Your recent order #12345 confirmed by email.</p>"
                "<p>Old order #12345 confirmed last week.</p>")

        spans = self._run(ScoredExactMatchStrategy(), anchor, body)

        self.assertEqual([span.detail for span in spans], ["rank=1 score=57", "rank=2 score=22"])
        self.assertTrue(spans[1].leaf.text.startswith("Old"))

    def test_scored_exact_drops_second_best_below_threshold(self):
        anchor = SelectionAnchor(original_text="order #12345 confirmed", text_before="your recent ", parent_tag="P")
        body = ("<p>Your recent order #12345 confirmed by email.</p>"
                "<div>Old order #12345 confirmed last week.</div>")

        spans = self._run(ScoredExactMatchStrategy(), anchor, body)

        self.assertEqual([span.detail for span in spans], ["rank=1 score=57"])

    def test_windowed_search_spans_many_small_elements(self):
        anchor = SelectionAnchor(original_text="Lorem ipsum dolor sit amet")
        body = "<p><span>Lorem</span> <span>ipsum</span> <span>dolor</span> <span>sit</span> <span>amet</span></p>"

        spans = self._run(WindowedSearchStrategy(), anchor, body)

        self.assertEqual(spans[0].leaf.text, "Lorem")
        self.assertEqual(spans[0].length, len("Lorem"))

    def test_fuzzy_match_tolerates_a_typo(self):
        anchor = SelectionAnchor(original_text="Alpha beta gamma delta epsilon zeta eta theta iota kappa")
        body = ("<p>Nothing in this paragraph resembles the copied sentence at all</p>"
                "<p>Alpha beta gamma delta epsilom zeta eta theta iota kappa</p>")

        spans = self._run(FuzzySimilarityStrategy(), anchor, body)

        self.assertEqual(len(spans), 1)
        self.assertEqual(spans[0].leaf.text, "Alpha beta gamma delta epsilom zeta eta theta iota kappa")
        self.assertEqual(spans[0].start, 0)

    def test_surrounding_text_uses_flank_then_container_text(self):
        body = "<p>Preceding context sentence and new stuff</p>"
        with_flank = SelectionAnchor(original_text="gone", text_before="Preceding context sentence")
        with_surrounding = SelectionAnchor(original_text="gone", surrounding_text="preceding CONTEXT")
        too_short = SelectionAnchor(original_text="gone", text_before="Preceding")

        self.assertEqual(len(self._run(SurroundingTextStrategy(), with_flank, body)), 1)
        self.assertEqual(len(self._run(SurroundingTextStrategy(), with_surrounding, body)), 1)
        self.assertEqual(self._run(SurroundingTextStrategy(), too_short, body), [])

    def test_partial_match_on_the_end_portion(self):
        anchor = SelectionAnchor(original_text="Opening words that vanished entirely, but the closing phrase remains")

        spans = self._run(PartialMatchStrategy(), anchor, "<p>Now the closing phrase remains here.</p>")

        self.assertEqual(spans[0].detail, "portion=end")
        self.assertEqual(spans[0].length, len(spans[0].leaf))


if __name__ == '__main__':
    unittest.main()
