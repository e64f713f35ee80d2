"""Tests for scanned and typed ISBN normalization."""

import pytest

from shelfscan.core.isbn import clip_manual, manual_candidate, normalize_scanned


class TestNormalizeScanned:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("9780132350884", "9780132350884"),
            ("ISBN 978-0-13-235088-4", "9780132350884"),
            ("979-10-90636-07-1", "9791090636071"),
            ("0-13-235088-2", "0132350882"),
            ("080442957x", "080442957X"),
            ("  0-8044-2957-X ", "080442957X"),
        ],
    )
    def test_accepts_isbn_candidates(self, raw, expected):
        assert normalize_scanned(raw) == expected

    def test_rejects_thirteen_digits_without_bookland_prefix(self):
        assert normalize_scanned("1234567890123") is None

    def test_ten_digit_codes_skip_prefix_check(self):
        assert normalize_scanned("1234567890") == "1234567890"

    def test_x_inside_isbn13_is_rejected(self):
        # "abc978013235088X!!" strips to 978013235088X
        assert normalize_scanned("abc978013235088X!!") is None

    def test_x_only_allowed_as_isbn10_check_digit(self):
        assert normalize_scanned("12345X7890") is None

    @pytest.mark.parametrize("raw", ["", None, "97801323", "978013235088412", "hello world"])
    def test_partial_or_noise_reads_are_not_candidates(self, raw):
        assert normalize_scanned(raw) is None


class TestManualCandidate:
    def test_fires_only_at_thirteen_digits(self):
        isbn = "9780132350884"
        hits = [manual_candidate(isbn[:i]) for i in range(1, 14)]
        assert hits[:-1] == [None] * 12
        assert hits[-1] == isbn

    def test_no_prefix_filter(self):
        assert manual_candidate("1234567890123") == "1234567890123"

    def test_counts_digits_only(self):
        assert manual_candidate("978-013235088") is None
        assert manual_candidate("978-0132350884") == "9780132350884"

    def test_ten_digit_entry_never_triggers(self):
        assert manual_candidate("0132350882") is None

    def test_field_is_clipped_to_thirteen_characters(self):
        assert clip_manual("97801323508849999") == "9780132350884"
        assert clip_manual("") == ""
