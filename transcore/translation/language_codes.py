"""
Language Code Definitions
ISO 639-1 codes for the reader's supported languages
"""

# Supported languages in display order
SUPPORTED_LANGUAGES = [
    "ja",  # Japanese
    "ru",  # Russian
    "en",  # English
    "de",  # German
    "es",  # Spanish
    "fr",  # French
    "zh",  # Chinese
]

# Every two-hop on-device path goes through English
PIVOT_LANGUAGE = "en"

# English names, used when prompting cloud models
ENGLISH_NAMES = {
    "ja": "Japanese",
    "ru": "Russian",
    "en": "English",
    "de": "German",
    "es": "Spanish",
    "fr": "French",
    "zh": "Chinese",
}

# Native names for UI display
NATIVE_NAMES = {
    "ja": "日本語",
    "ru": "Русский",
    "en": "English",
    "de": "Deutsch",
    "es": "Español",
    "fr": "Français",
    "zh": "中文",
}

# Display codes that differ from the uppercased ISO code
DISPLAY_CODES = {
    "ja": "JP",
    "zh": "CN",
}


def get_language_name(code: str) -> str:
    """Get native language name from code"""
    return NATIVE_NAMES.get(code.lower(), code.upper())


def get_english_name(code: str) -> str:
    """Get English language name from code"""
    return ENGLISH_NAMES.get(code.lower(), code.upper())


def get_display_code(code: str) -> str:
    """Get short uppercase code for display (ja -> JP, zh -> CN)"""
    return DISPLAY_CODES.get(code.lower(), code.upper())


def pair_key(source: str, target: str) -> str:
    """Cache and registry key for a language pair"""
    return f"{source}-{target}"
