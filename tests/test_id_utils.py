"""Tests for identifier helpers."""

import doctest

from scorecard.db import dolt_client
from scorecard.utils import id_utils
from scorecard.utils.id_utils import loose_id, natural_key, normalize_id


class TestIdUtils:
    def test_blank_ids_are_missing(self):
        assert normalize_id("") is None
        assert normalize_id("   ") is None
        assert normalize_id(None) is None

    def test_natural_order(self):
        assert sorted(["RAT-10", "RAT-9", "RAT-100"], key=natural_key) == ["RAT-9", "RAT-10", "RAT-100"]

    def test_loose_id_ignores_case_and_punctuation(self):
        assert loose_id("prj_0042") == loose_id("PRJ-0042")

    def test_docstring_examples(self):
        assert doctest.testmod(id_utils).failed == 0
        assert doctest.testmod(dolt_client).failed == 0
