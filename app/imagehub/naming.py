"""
Filename helpers.
Turn free prompt text into short, letters-only image file names.
"""
import re
import unicodedata
from typing import Iterable, List

IMAGE_EXTENSION = ".png"
FALLBACK_STEM = "image"
COPY_SUFFIX = "-copy"
MAX_WORDS = 8

_NON_LETTERS = re.compile(r"[^A-Za-z\s]")
_LINE_BREAK = re.compile(r"\r?\n")


def split_prompts(text: str) -> List[str]:
    """Split prompt text into trimmed, non-blank lines, keeping input order."""
    lines = (line.strip() for line in _LINE_BREAK.split(text or ""))
    return [line for line in lines if line]


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def derive_filename(prompt: str, existing_names: Iterable[str] = ()) -> str:
    """
    Derive a file name from prompt text.

    Digits, punctuation and emoji are dropped, at most the first
    eight words are kept and joined with hyphens. Collisions with
    existing_names are resolved by appending "-copy" until unique.

    Args:
        prompt: Source prompt text
        existing_names: Names already taken in the batch

    Returns:
        File name ending in .png
    """
    taken = set(existing_names)

    letters = _NON_LETTERS.sub(" ", _strip_diacritics(prompt or ""))
    words = letters.split()[:MAX_WORDS]
    stem = "-".join(words).lower() or FALLBACK_STEM

    while stem + IMAGE_EXTENSION in taken:
        stem += COPY_SUFFIX
    return stem + IMAGE_EXTENSION
