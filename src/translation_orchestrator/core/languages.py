SUPPORTED_LANGUAGES = [
    {"code": "en", "name": "English"},
    {"code": "de", "name": "Deutsch"},
    {"code": "fr", "name": "Français"},
    {"code": "es", "name": "Español"},
    {"code": "it", "name": "Italiano"},
    {"code": "pt", "name": "Português"},
]

LANGUAGE_CODES = {language["code"] for language in SUPPORTED_LANGUAGES}


def normalize_language(code: str) -> str:
    return code.strip().lower() if code else code
