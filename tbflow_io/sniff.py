"""Format detection for upstream report payloads."""

# Module responsibilities:
# - Classify a byte buffer as xlsx/xls/csv/pdf/json from weak, possibly conflicting signals.
# - Apply a fixed precedence: filename hint, declared content type, magic bytes, json fallback.

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote

from .schema import (
    CSV_MIME,
    JSON_MIME,
    PDF_MIME,
    XLS_MIME,
    XLSX_MIME,
    Extension,
    FormatGuess,
)
from .utils.log import get_logger

logger = get_logger("sniff")

_FILENAME_RE = re.compile(r"filename\*=UTF-8''([^;]+)|filename=\"?([^\";]+)\"?", re.IGNORECASE)
_JSON_HEAD_RE = re.compile(r"^[\ufeff\s]*[\{\[]")

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
PDF_MAGIC = b"%PDF"

_MIMES: dict[str, str] = {
    "xlsx": XLSX_MIME,
    "xls": XLS_MIME,
    "csv": CSV_MIME,
    "pdf": PDF_MIME,
    "json": JSON_MIME,
}

# ``.xlsx`` must be tested before ``.xls``.
_FILENAME_SUFFIXES: tuple[Extension, ...] = ("xlsx", "xls", "csv", "pdf", "json")


def _guess(extension: Extension) -> FormatGuess:
    return FormatGuess(extension=extension, mime=_MIMES[extension])


def filename_from_disposition(content_disposition: Optional[str]) -> Optional[str]:
    """Return the (percent-decoded) filename carried by a content-disposition header."""

    if not content_disposition:
        return None
    match = _FILENAME_RE.search(content_disposition)
    if not match:
        return None
    raw = match.group(1) or match.group(2) or ""
    name = unquote(raw.strip())
    return name or None


def _from_filename(content_disposition: Optional[str]) -> Optional[FormatGuess]:
    filename = filename_from_disposition(content_disposition)
    if not filename:
        return None
    lowered = filename.lower()
    for suffix in _FILENAME_SUFFIXES:
        if lowered.endswith(f".{suffix}"):
            return _guess(suffix)
    return None


def _from_content_type(content_type: Optional[str]) -> Optional[FormatGuess]:
    if not content_type:
        return None
    ct = content_type.lower()
    if "officedocument.spreadsheetml.sheet" in ct:
        return _guess("xlsx")
    if "vnd.ms-excel" in ct:
        return _guess("xls")
    if "text/csv" in ct or "application/csv" in ct:
        return _guess("csv")
    if "pdf" in ct:
        return _guess("pdf")
    if "json" in ct:
        return _guess("json")
    return None


def _from_magic(content: bytes) -> Optional[FormatGuess]:
    if content.startswith(ZIP_MAGIC):
        return _guess("xlsx")
    if content.startswith(OLE_MAGIC):
        return _guess("xls")
    if content.startswith(PDF_MAGIC):
        return _guess("pdf")
    return None


def sniff(
    content: bytes,
    content_type: Optional[str] = None,
    content_disposition: Optional[str] = None,
) -> FormatGuess:
    """Classify a payload; never raises and defaults to json.

    Args:
        content: Raw response bytes.
        content_type: Declared ``Content-Type`` header, if any.
        content_disposition: ``Content-Disposition`` header, if any.

    Returns:
        The best format guess according to the signal precedence.
    """

    guess = (
        _from_filename(content_disposition)
        or _from_content_type(content_type)
        or _from_magic(content or b"")
    )
    if guess is not None:
        return guess
    logger.debug(
        "No format signal matched; assuming json",
        extra={"content_type": content_type, "bytes": len(content or b"")},
    )
    return _guess("json")


def looks_like_json(content: bytes, content_type: Optional[str], guess: FormatGuess) -> bool:
    """Return True when the payload should be handled as a JSON document."""

    if guess.extension == "json":
        return True
    if content_type and "json" in content_type.lower():
        return True
    head = (content or b"")[:128].decode("utf-8", errors="ignore")
    return bool(_JSON_HEAD_RE.match(head))


def source_label(content: bytes, content_type: Optional[str], guess: FormatGuess) -> Extension:
    """Label naming how the payload was treated downstream."""

    return "json" if looks_like_json(content, content_type, guess) else guess.extension


__all__ = [
    "sniff",
    "looks_like_json",
    "source_label",
    "filename_from_disposition",
    "ZIP_MAGIC",
    "OLE_MAGIC",
    "PDF_MAGIC",
]
