"""Key normalisation shared by rule matching and diagnosis comparison.

Case authors and learners type the same things many ways ("D-Dimer",
"d dimer", "D_DİMER"). Every key is folded into one comparable form:

* Turkish-aware case folding (``İ``/``I``/``ı`` all become ``i``)
* diacritics removed (``ş`` -> ``s``, ``ü`` -> ``u``, ...)
* underscores, hyphens and whitespace dropped
"""
from __future__ import annotations

import re
import unicodedata
from typing import Any, List

_STRIP_RX = re.compile(r"[\s_\-]+")
_DOSE_RX = re.compile(r"\s*\([^()]*\)\s*$")
_TR_FOLD = str.maketrans({"İ": "i", "I": "i", "ı": "i"})


def fold_text(value: Any) -> str:
    """Case and diacritic folding only; separators are kept."""
    if value is None:
        return ""
    text = str(value).translate(_TR_FOLD).casefold()
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def split_words(value: Any) -> List[str]:
    return [w for w in _STRIP_RX.split(fold_text(value)) if w]


def normalize_key(value: Any) -> str:
    return _STRIP_RX.sub("", fold_text(value))


def strip_dose(name: Any) -> str:
    """Drop a trailing dose parenthetical: ``"Aspirin (300 mg)"`` -> ``"Aspirin"``."""
    if name is None:
        return ""
    return _DOSE_RX.sub("", str(name)).strip()


def normalize_drug(name: Any) -> str:
    return normalize_key(strip_dose(name))


__all__ = ["fold_text", "split_words", "normalize_key", "strip_dose", "normalize_drug"]
