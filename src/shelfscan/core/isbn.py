"""Turn raw scanner or keyboard input into ISBN candidates."""

from __future__ import annotations

import re

MANUAL_MAX_LENGTH = 13
SCAN_PREFIXES = ("978", "979")

_NON_ISBN_CHARS = re.compile(r"[^0-9X]", re.IGNORECASE)
_NON_DIGITS = re.compile(r"\D")


def normalize_scanned(raw: str | None) -> str | None:
    """Return a scanned ISBN-10/13, or None if the text is not a candidate yet.

    Accepts decoder output like 'ISBN 978-0-13-235088-4'. Every character
    other than a digit or X is dropped. A 13-character result must be all
    digits with a Bookland prefix (978/979); a 10-character legacy ISBN may
    end in the X check digit and skips the prefix check.
    None is not an error: partial reads are expected and the next frame
    gets another try.
    """
    if not raw:
        return None
    isbn = _NON_ISBN_CHARS.sub("", raw).upper()
    if len(isbn) == 10 and isbn[:9].isdigit():
        return isbn
    if len(isbn) == 13 and isbn.isdigit() and isbn.startswith(SCAN_PREFIXES):
        return isbn
    return None


def clip_manual(text: str) -> str:
    """The manual ISBN field holds at most 13 characters."""
    return (text or "")[:MANUAL_MAX_LENGTH]


def manual_candidate(text: str) -> str | None:
    """Return the typed ISBN once exactly 13 digits are present.

    No prefix check here: operators may key in anything the sticker says.
    """
    digits = _NON_DIGITS.sub("", text or "")
    if len(digits) == MANUAL_MAX_LENGTH:
        return digits
    return None
