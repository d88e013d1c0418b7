"""Book section partition checks."""

from typing import Protocol, Sequence

from config.exceptions import SectionCoverageError


class _PageRange(Protocol):
    from_page: int
    to_page: int


def section_coverage_problem(sections: Sequence[_PageRange], page_count: int) -> str | None:
    """Describe why sections fail to partition [1, page_count], or None if they do.

    Sections are checked in the order given: they must start at page 1,
    end at page_count, and each must begin right after the previous one.
    """
    if page_count < 1:
        return f"page count {page_count} is not positive"
    if not sections:
        return "no sections"

    expected_from = 1
    for index, section in enumerate(sections):
        if section.to_page < section.from_page:
            return f"section {index + 1} ends before it starts ({section.from_page}-{section.to_page})"
        if section.from_page != expected_from:
            kind = "gap" if section.from_page > expected_from else "overlap"
            return f"{kind} before section {index + 1}: expected page {expected_from}, got {section.from_page}"
        expected_from = section.to_page + 1

    if sections[-1].to_page != page_count:
        return f"last section ends at {sections[-1].to_page}, book has {page_count} pages"
    return None


def check_section_coverage(title: str, sections: Sequence[_PageRange], page_count: int) -> None:
    """Raise SectionCoverageError unless sections partition [1, page_count]."""
    problem = section_coverage_problem(sections, page_count)
    if problem:
        raise SectionCoverageError(title, problem)
