from typing import Dict

from ..models.models import LanguageStruct

UNSUPPORTED_LANGUAGE_ID = -1

# Judge0 CE language ids
SUPPORTED_LANGUAGES: Dict[str, int] = {
    "c": 50,
    "cpp": 54,
    "c++": 54,
    "java": 62,
    "javascript": 63,
    "js": 63,
    "node": 63,
    "python": 71,
    "python3": 71,
    "py": 71,
    "go": 60,
    "golang": 60,
    "rust": 73,
    "ruby": 72,
    "csharp": 51,
    "c#": 51,
    "kotlin": 78,
}


def map_language(label: str) -> LanguageStruct:
    """
    Convert a user-friendly language name to the execution engine's id.

    Matching ignores case and surrounding whitespace; the returned struct
    carries the label as given. Unknown or non-text labels resolve to
    UNSUPPORTED_LANGUAGE_ID; callers must reject them.
    """
    if not isinstance(label, str):
        return LanguageStruct(UNSUPPORTED_LANGUAGE_ID, label)
    return LanguageStruct(SUPPORTED_LANGUAGES.get(label.strip().lower(), UNSUPPORTED_LANGUAGE_ID), label)
