"""
Script-based language detection with stop-word scoring for Latin languages
"""
import re
from typing import Dict, List, Optional

from pydantic import BaseModel


class LanguageDetectionResult(BaseModel):
    language: str
    confidence: float
    script: str = "other"


# Script -> character class, in tie-break order
SCRIPT_PATTERNS = {
    "hanzi": re.compile(r'[一-龥]'),
    "kana": re.compile(r'[぀-ゟ゠-ヿ]'),
    "hangul": re.compile(r'[가-힯]'),
    "cyrillic": re.compile(r'[Ѐ-ӿ]'),
    "arabic": re.compile(r'[؀-ۿ]'),
    "latin": re.compile(r'[a-zA-Z]'),
}

SCRIPT_LANGUAGE = {
    "hanzi": "zh",
    "kana": "ja",
    "hangul": "ko",
    "cyrillic": "ru",
    "arabic": "ar",
}

SCRIPT_CONFIDENCE_BONUS = {
    "hanzi": 0.2,
    "kana": 0.2,
    "hangul": 0.2,
    "cyrillic": 0.15,
    "arabic": 0.15,
    "latin": 0.1,
    "other": 0.0,
}

LATIN_STOPWORDS: Dict[str, List[re.Pattern]] = {
    "en": [
        re.compile(r'\b(the|and|is|in|at|of|to|a|an|be|are|was|were|been|being)\b'),
        re.compile(r'\b(this|that|these|those|with|from|for|about|as|into|like|through)\b'),
    ],
    "es": [
        re.compile(r'\b(el|la|de|que|y|a|en|un|una|es|son|con|por|para|como|estar|hay)\b'),
        re.compile(r'\b(este|esta|esto|pero|más|todo|también|tiempo|año|ver)\b'),
    ],
    "fr": [
        re.compile(r'\b(le|la|de|et|à|un|une|en|est|son|avec|pour|pas|plus|comme)\b'),
        re.compile(r'\b(ce|cet|cette|ces|mais|tout|aussi|temps|an|voir|faire)\b'),
    ],
    "de": [
        re.compile(r'\b(der|die|das|und|in|den|von|zu|sich|mit|für|auf|ist|im)\b'),
        re.compile(r'\b(dieser|diese|dieses|aber|auch|alle|zwischen|durch|wieder|ohne)\b'),
    ],
    "pt": [
        re.compile(r'\b(o|a|de|e|em|um|uma|é|são|com|para|não|se|mas|como|mais)\b'),
        re.compile(r'\b(este|esta|isto|tudo|também|tempo|ano|ver|por|entre)\b'),
    ],
    "it": [
        re.compile(r'\b(il|la|di|e|in|un|una|è|sono|con|per|non|ma|come|più)\b'),
        re.compile(r'\b(questo|questa|tutto|anche|tempo|anno|vedere)\b'),
    ],
}

SUPPORTED_LANGUAGES = ("zh", "en", "ja", "ko", "es", "fr", "de", "pt", "it", "ru", "ar", "other")


class LanguageDetector:
    """Detects the dominant language of a text from its script and common words"""

    HIGH_CONFIDENCE_LENGTH = 100

    def detect(self, text: Optional[str]) -> LanguageDetectionResult:
        if not text or not text.strip():
            return LanguageDetectionResult(language="other", confidence=0.0, script="other")

        script = self._detect_script(text)
        language = self._language_for_script(text, script)
        confidence = self._calculate_confidence(len(text), script, language)
        return LanguageDetectionResult(language=language, confidence=confidence, script=script)

    def detect_batch(self, texts: List[str]) -> List[LanguageDetectionResult]:
        return [self.detect(text) for text in texts]

    def quick_detect(self, text: Optional[str]) -> str:
        """Return a language code from the first distinctive script found, default 'en'"""
        if not text:
            return "other"
        for script in ("hanzi", "kana", "hangul", "cyrillic", "arabic"):
            if SCRIPT_PATTERNS[script].search(text):
                return SCRIPT_LANGUAGE[script]
        return "en"

    @staticmethod
    def is_supported(language: str) -> bool:
        return language in SUPPORTED_LANGUAGES

    def _detect_script(self, text: str) -> str:
        dominant, max_count = "other", 0
        for script, pattern in SCRIPT_PATTERNS.items():
            count = len(pattern.findall(text))
            if count > max_count:
                dominant, max_count = script, count
        return dominant

    def _language_for_script(self, text: str, script: str) -> str:
        if script == "latin":
            return self._detect_latin_language(text)
        return SCRIPT_LANGUAGE.get(script, "other")

    def _detect_latin_language(self, text: str) -> str:
        lower_text = text.lower()
        detected, max_matches = "en", 0
        for language, patterns in LATIN_STOPWORDS.items():
            matches = sum(len(pattern.findall(lower_text)) for pattern in patterns)
            if matches > max_matches:
                detected, max_matches = language, matches
        return detected

    def _calculate_confidence(self, text_length: int, script: str, language: str) -> float:
        confidence = 0.5

        if text_length >= self.HIGH_CONFIDENCE_LENGTH:
            confidence += 0.3
        elif text_length >= 50:
            confidence += 0.2
        elif text_length >= 20:
            confidence += 0.1

        confidence += SCRIPT_CONFIDENCE_BONUS.get(script, 0.0)

        if SCRIPT_LANGUAGE.get(script) == language:
            confidence += 0.1

        return min(max(confidence, 0.0), 1.0)


language_detector = LanguageDetector()
