"""
ISBN normalization, checksum validation, conversion and lookup candidates.

All helpers are pure. Rejections are reported as `False` / `None`, never raised.
"""
import re

_NON_ISBN_CHARS = re.compile(r"[^0-9xX]")
_ISBN10_PATTERN = re.compile(r"^\d{9}[\dX]$")
_ISBN13_PATTERN = re.compile(r"^\d{13}$")
_SPREADSHEET_WRAPPER = re.compile(r'^="?|"$')


def normalize_scanned_code(raw: str | None) -> str:
    """Strip everything except digits and the X check character."""
    if not raw:
        return ""
    return _NON_ISBN_CHARS.sub("", raw).replace("x", "X")


def normalize_isbn(raw: str | None) -> str:
    """
    Normalize an ISBN field coming from a stored record.

    Spreadsheet exports wrap identifiers as `="9780306406157"`, so the
    wrapper is removed before stripping. The result is lower-cased because
    it is only used to build cache keys.
    """
    if not raw:
        return ""
    unwrapped = _SPREADSHEET_WRAPPER.sub("", raw)
    return _NON_ISBN_CHARS.sub("", unwrapped).lower()


def _isbn13_check_digit(first_twelve: str) -> int:
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(first_twelve))
    return (10 - total % 10) % 10


def _isbn10_check_char(first_nine: str) -> str:
    total = sum((10 - i) * int(d) for i, d in enumerate(first_nine))
    remainder = (11 - total % 11) % 11
    return "X" if remainder == 10 else str(remainder)


def is_valid_isbn10(code: str) -> bool:
    if len(code) != 10 or not _ISBN10_PATTERN.match(code):
        return False
    total = sum((10 - i) * int(d) for i, d in enumerate(code[:9]))
    total += 10 if code[9] == "X" else int(code[9])
    return total % 11 == 0


def is_valid_isbn13(code: str) -> bool:
    if len(code) != 13 or not _ISBN13_PATTERN.match(code):
        return False
    return _isbn13_check_digit(code[:12]) == int(code[12])


def is_valid_isbn(code: str) -> bool:
    return is_valid_isbn10(code) or is_valid_isbn13(code)


def isbn10_to_13(isbn10: str) -> str | None:
    if len(isbn10) != 10 or not isbn10[:9].isdigit():
        return None
    base = "978" + isbn10[:9]
    return base + str(_isbn13_check_digit(base))


def isbn13_to_10(isbn13: str) -> str | None:
    if len(isbn13) != 13 or not isbn13.startswith("978") or not isbn13.isdigit():
        return None
    base = isbn13[3:12]
    return base + _isbn10_check_char(base)


def get_lookup_candidates_from_barcode(raw_code: str) -> list[str]:
    """
    Ordered identifiers to try for a scanned code.

    A 978/979 EAN tries itself first and then its ISBN-10 form, a 10-character
    code tries its ISBN-13 form first. Anything else is passed through as-is.
    """
    code = normalize_scanned_code(raw_code)
    candidates: list[str] = []

    def add(candidate: str | None):
        if candidate and candidate not in candidates:
            candidates.append(candidate)

    if len(code) == 13 and code.startswith(("978", "979")):
        add(code)
        add(isbn13_to_10(code))
    elif len(code) == 10:
        add(isbn10_to_13(code))
        add(code)
    else:
        add(code)
    return candidates
