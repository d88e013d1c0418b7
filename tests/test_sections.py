"""Tests for the book section partition check."""

import pytest

from models.book import Section


def _sections(*ranges):
    return [Section(title=f"Part {i + 1}", from_page=a, to_page=b) for i, (a, b) in enumerate(ranges)]


class TestSectionCoverage:
    def test_exact_partition_passes(self):
        from tools.sections import section_coverage_problem
        assert section_coverage_problem(_sections((1, 10), (11, 25), (26, 30)), 30) is None

    def test_single_page_book(self):
        from tools.sections import section_coverage_problem
        assert section_coverage_problem(_sections((1, 1)), 1) is None

    def test_gap_detected(self):
        from tools.sections import section_coverage_problem
        problem = section_coverage_problem(_sections((1, 10), (12, 20)), 20)
        assert problem.startswith("gap")

    def test_overlap_detected(self):
        from tools.sections import section_coverage_problem
        problem = section_coverage_problem(_sections((1, 10), (10, 20)), 20)
        assert problem.startswith("overlap")

    def test_must_start_at_page_one(self):
        from tools.sections import section_coverage_problem
        assert section_coverage_problem(_sections((2, 20)), 20) is not None

    def test_must_end_at_page_count(self):
        from tools.sections import section_coverage_problem
        problem = section_coverage_problem(_sections((1, 10), (11, 19)), 20)
        assert "ends at 19" in problem

    def test_inverted_range_detected(self):
        from tools.sections import section_coverage_problem
        problem = section_coverage_problem(_sections((1, 10), (15, 11)), 20)
        assert "ends before it starts" in problem

    def test_no_sections(self):
        from tools.sections import section_coverage_problem
        assert section_coverage_problem([], 10) == "no sections"

    def test_check_raises_with_title(self):
        from config.exceptions import SchemaValidationError, SectionCoverageError
        from tools.sections import check_section_coverage
        with pytest.raises(SectionCoverageError, match="The Fog Clerk") as exc_info:
            check_section_coverage("The Fog Clerk", _sections((1, 5)), 10)
        assert isinstance(exc_info.value, SchemaValidationError)
        assert exc_info.value.details["title"] == "The Fog Clerk"
