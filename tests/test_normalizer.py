"""Tests for the rating record normalizer (both storage shapes)."""

from datetime import datetime, timezone

import pytest

from scorecard.errors import MalformedRecord
from scorecard.models.project import ProjectStatus
from scorecard.models.rating import Provenance
from scorecard.services.normalizer import (
    RatingNormalizer,
    parse_bool,
    parse_status,
    parse_sub_rating,
    parse_timestamp,
)

from factories import IMPORTED, consolidated_row, project_row, rating_row


@pytest.fixture
def normalizer():
    return RatingNormalizer(IMPORTED)


# ─── Field parsers ────────────────────────────────────────────────────────────


class TestParseSubRating:
    def test_integer_string(self):
        assert parse_sub_rating(" 7 ", "quality") == 7

    def test_integral_float(self):
        assert parse_sub_rating(8.0, "quality") == 8

    def test_legacy_zero_is_missing(self):
        """Legacy importer wrote 0 for not rated → None."""
        assert parse_sub_rating(0, "quality") is None

    def test_out_of_range_raises(self):
        with pytest.raises(MalformedRecord):
            parse_sub_rating(11, "quality", "RAT-1")

    def test_fraction_raises(self):
        with pytest.raises(MalformedRecord):
            parse_sub_rating(7.5, "quality")

    def test_text_raises(self):
        with pytest.raises(MalformedRecord) as exc:
            parse_sub_rating("great", "quality", "RAT-9")
        assert exc.value.subject_id == "RAT-9"


class TestParseScalars:
    def test_bool_strings(self):
        assert parse_bool("Yes") is True
        assert parse_bool("n") is False
        assert parse_bool("maybe") is None
        assert parse_bool(None) is None

    def test_legacy_statuses(self):
        assert parse_status("In Progress") == ProjectStatus.ACTIVE
        assert parse_status("closed") == ProjectStatus.COMPLETED
        assert parse_status("ARCHIVED") == ProjectStatus.ARCHIVED
        assert parse_status(None) == ProjectStatus.ACTIVE

    def test_editor_statuses_are_active(self):
        """New projects start as planning or proposed in the project editor."""
        assert parse_status("planning") == ProjectStatus.ACTIVE
        assert parse_status("Proposed") == ProjectStatus.ACTIVE

    def test_unknown_status_raises(self):
        with pytest.raises(MalformedRecord):
            parse_status("on hold", "PRJ-1")

    def test_timestamp_z_suffix(self):
        assert parse_timestamp("2024-02-01T10:00:00Z", "created_at") == datetime(
            2024, 2, 1, 10, tzinfo=timezone.utc
        )

    def test_naive_timestamp_is_utc(self):
        parsed = parse_timestamp("2024-02-01 10:00:00", "created_at")
        assert parsed.tzinfo == timezone.utc

    def test_bad_timestamp_raises(self):
        with pytest.raises(MalformedRecord):
            parse_timestamp("last tuesday", "created_at")


# ─── Paired shape ─────────────────────────────────────────────────────────────


class TestPairedShape:
    def test_project_row(self, normalizer):
        project = normalizer.normalize_project(project_row(" PRJ-1 ", status="Completed"))
        assert project.project_id == "PRJ-1"
        assert project.vendor_id == "VEN-1"
        assert project.status == ProjectStatus.COMPLETED
        assert project.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_project_without_id_raises(self, normalizer):
        with pytest.raises(MalformedRecord):
            normalizer.normalize_project(project_row(""))

    def test_rating_row(self, normalizer):
        rating = normalizer.normalize_rating(rating_row("RAT-1", "PRJ-1", 8, 9, 7, recommend_again="yes"))
        assert rating.sub_ratings == (8, 9, 7)
        assert rating.recommend is True
        assert rating.provenance == Provenance.LIVE

    def test_sentinel_email_marks_imported(self, normalizer):
        rating = normalizer.normalize_rating(rating_row("RAT-1", "PRJ-1", rater_email=" Imported@System.com "))
        assert rating.provenance == Provenance.IMPORTED

    def test_rating_without_project_raises(self, normalizer):
        """Missing project reference → MalformedRecord carrying the rating id."""
        with pytest.raises(MalformedRecord) as exc:
            normalizer.normalize_rating(rating_row("RAT-5", None))
        assert exc.value.subject_id == "RAT-5"

    def test_paired_join_key_fills_project(self, normalizer):
        row = rating_row("RAT-1", None, 5, 5, 5)
        record = normalizer.normalize_paired(project_row("PRJ-3"), row)
        assert record.rating.project_id == "PRJ-3"


# ─── Consolidated shape ───────────────────────────────────────────────────────


class TestConsolidatedShape:
    def test_project_only_row(self, normalizer):
        record = normalizer.normalize_consolidated(consolidated_row("PRJ-7"))
        assert record.project.title == "Legacy PRJ-7"
        assert record.project.status == ProjectStatus.COMPLETED
        assert record.rating is None

    def test_row_with_rating_fields(self, normalizer):
        """Consolidated rating columns → a rating with a deterministic id."""
        row = consolidated_row(
            "PRJ-7",
            success_rating=9,
            quality_rating=8,
            communication_rating=0,
            project_overall_rating=8.5,
            rater_email=IMPORTED,
        )
        record = normalizer.normalize_consolidated(row)
        rating = record.rating
        assert rating.rating_id == "RAT-PRJ-7"
        assert rating.vendor_id == "VEN-1"
        assert rating.sub_ratings == (9, 8, None)
        assert rating.supplied_overall == 8.5
        assert rating.is_imported

    def test_same_row_twice_is_identical(self, normalizer):
        row = consolidated_row("PRJ-7", success_rating=9)
        assert normalizer.normalize_consolidated(row) == normalizer.normalize_consolidated(row)


# ─── Batches ──────────────────────────────────────────────────────────────────


class TestBatch:
    def test_malformed_rows_are_skipped_and_collected(self, normalizer):
        rows = [
            rating_row("RAT-1", "PRJ-1", 8),
            rating_row("RAT-2", "PRJ-1", 42),
            rating_row("RAT-3", None),
        ]
        result = normalizer.normalize_ratings(rows)
        assert [r.rating_id for r in result.records] == ["RAT-1"]
        assert [e.subject_id for e in result.malformed] == ["RAT-2", "RAT-3"]

    def test_malformed_rating_keeps_project_reference(self, normalizer):
        result = normalizer.normalize_ratings([rating_row("RAT-2", "PRJ-1", 8, 11, 9)])
        assert result.records == []
        assert result.malformed[0].details["project_id"] == "PRJ-1"
        assert result.malformed[0].details["field"] == "quality"

    def test_planning_project_is_kept(self, normalizer):
        result = normalizer.normalize_projects([project_row("PRJ-1", status="planning")])
        assert result.malformed == []
        assert result.records[0].status == ProjectStatus.ACTIVE
