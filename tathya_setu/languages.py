"""
Supported reply languages and their display names.
"""

from enum import Enum
from typing import Optional, Union


class Language(str, Enum):
    EN = "en"
    HI = "hi"
    HINGLISH = "hinglish"
    BN = "bn"
    TE = "te"
    MR = "mr"
    TA = "ta"
    UR = "ur"
    GU = "gu"
    KN = "kn"
    ML = "ml"
    PA = "pa"


LANGUAGE_NAMES = {
    Language.EN: "English",
    Language.HI: "Hindi",
    Language.HINGLISH: "Hinglish",
    Language.BN: "Bengali",
    Language.TE: "Telugu",
    Language.MR: "Marathi",
    Language.TA: "Tamil",
    Language.UR: "Urdu",
    Language.GU: "Gujarati",
    Language.KN: "Kannada",
    Language.ML: "Malayalam",
    Language.PA: "Punjabi",
}


def resolve_language(code: Optional[Union[str, Language]]) -> Language:
    """Parse a language code, falling back to English for anything unknown."""
    if isinstance(code, Language):
        return code
    try:
        return Language((code or "").strip().lower())
    except ValueError:
        return Language.EN


def language_name(language: Union[str, Language]) -> str:
    """Display name used in model instructions (never the raw code)."""
    return LANGUAGE_NAMES[resolve_language(language)]
