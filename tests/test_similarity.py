"""Tests for govkb.similarity — token Jaccard, context score, combined confidence."""
import pytest

from govkb.similarity import confidence, context_score, token_similarity
from govkb.types import SessionContext


class TestTokenSimilarity:
    def test_symmetric(self):
        a = ["msme", "registration", "fees"]
        b = ["registration", "fees", "maharashtra", "udyam"]
        assert token_similarity(a, b) == token_similarity(b, a)

    def test_identity(self):
        a = ["gst", "registration", "threshold"]
        assert token_similarity(a, a) == 1.0

    def test_empty_side(self):
        assert token_similarity(["gst"], []) == 0.0
        assert token_similarity([], ["gst"]) == 0.0
        assert token_similarity([], []) == 0.0

    def test_jaccard_value(self):
        # 2 shared of 4 distinct
        assert token_similarity(["aaa", "bbb", "ccc"], ["bbb", "ccc", "ddd"]) == pytest.approx(0.5)

    def test_disjoint(self):
        assert token_similarity(["aaa"], ["bbb"]) == 0.0


class TestContextScore:
    def test_identical_context(self):
        ctx = SessionContext("India", "Maharashtra", "Manufacturing", "Factory Setup")
        assert context_score(ctx, ctx.copy()) == 1.0

    def test_no_comparable_dimensions(self):
        assert context_score(SessionContext(), SessionContext("India", "Goa", "IT")) == 0.0
        assert context_score(SessionContext("India"), SessionContext(state="Goa")) == 0.0

    def test_intent_does_not_count(self):
        entry = SessionContext(intent="Factory Setup")
        session = SessionContext(intent="Factory Setup")
        assert context_score(entry, session) == 0.0

    def test_state_mismatch_loses_state_weight(self):
        entry = SessionContext("India", "Maharashtra", "Manufacturing")
        session = SessionContext("India", "Gujarat", "Manufacturing")
        assert context_score(entry, session) == pytest.approx(0.6)

    def test_universal_state_on_entry(self):
        entry = SessionContext("India", "All", "Manufacturing")
        session = SessionContext("India", "Gujarat", "Manufacturing")
        assert context_score(entry, session) == 1.0

    def test_universal_state_only_from_entry_side(self):
        entry = SessionContext("India", "Gujarat")
        session = SessionContext("India", "All")
        assert context_score(entry, session) == pytest.approx(0.5)

    def test_only_present_dimensions_in_denominator(self):
        # sector missing on the session side, so only country+state count
        entry = SessionContext("India", "Maharashtra", "Manufacturing")
        session = SessionContext("India", "Maharashtra")
        assert context_score(entry, session) == 1.0

    def test_country_only_mismatch(self):
        assert context_score(SessionContext("India"), SessionContext("Nepal")) == 0.0


class TestConfidence:
    def test_weights(self):
        assert confidence(1.0, 1.0) == 1.0
        assert confidence(1.0, 0.0) == pytest.approx(0.7)
        assert confidence(0.0, 1.0) == pytest.approx(0.3)

    def test_boundary_is_exact(self):
        # 4 of 7 shared tokens with a fully matching context lands on 0.7
        assert confidence(4 / 7, 1.0) >= 0.7
