"""
Admissions Shared Helpers

Pure functions for applicant numbers, requirement short labels and stored
filenames. Every stored filename is derivable from slot data, which is what
the consistency sweep relies on.
"""

import re
from pathlib import PurePath

SEQUENCE_WIDTH = 5

_NON_LABEL_CHARS = re.compile(r"[^A-Za-z0-9]")


def format_applicant_number(year: int, semester_code: str, sequence: int) -> str:
    """
    Format an applicant number.

    Example:
        >>> format_applicant_number(2025, "1", 7)
        '2025100007'
    """
    if sequence < 1:
        raise ValueError(f"Sequence must be positive, got {sequence}")
    return f"{year}{semester_code}{sequence:0{SEQUENCE_WIDTH}d}"


def applicant_number_prefix(year: int, semester_code: str) -> str:
    """The year+semester prefix shared by every number of one period."""
    return f"{year}{semester_code}"


def make_short_label(description: str) -> str:
    """
    Derive a filename-safe token from a requirement description.

    Only ASCII letters and digits are kept, so "Form 138" becomes "Form138".

    Raises:
        ValueError: If nothing usable remains
    """
    label = _NON_LABEL_CHARS.sub("", description)
    if not label:
        raise ValueError(f"Cannot derive a short label from {description!r}")
    return label


def file_extension(original_name: str) -> str:
    """Lower-cased extension including the dot, or "" when there is none."""
    return PurePath(original_name).suffix.lower()


def build_stored_filename(
    applicant_number: str,
    short_label: str,
    year: int,
    original_name: str,
) -> str:
    """
    Build the deterministic stored filename for a slot's document.

    Example:
        >>> build_stored_filename("2025100007", "Form138", 2025, "report.pdf")
        '2025100007_Form138_2025.pdf'
    """
    return f"{applicant_number}_{short_label}_{year}{file_extension(original_name)}"
