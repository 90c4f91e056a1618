"""
Tests for script-based language detection.
"""

import pytest

from src.analyzers.language_detector import LanguageDetector


@pytest.fixture
def detector():
    return LanguageDetector()


class TestDetect:
    def test_chinese(self, detector):
        result = detector.detect("这是一个关于机器学习的中文文章")

        assert result.language == "zh"
        assert result.script == "hanzi"
        # 15 characters: base plus script bonus plus script/language agreement
        assert result.confidence == pytest.approx(0.8)

    def test_english(self, detector):
        text = "This is the best article about the new features in Python and the ecosystem around it today."
        result = detector.detect(text * 2)

        assert result.language == "en"
        assert result.script == "latin"
        assert result.confidence == pytest.approx(0.9)

    def test_german_by_stopwords(self, detector):
        result = detector.detect("Der Hund und die Katze sind in dem Haus, aber die Maus ist auch da.")
        assert result.language == "de"

    def test_cyrillic(self, detector):
        assert detector.detect("Привет мир, это статья").language == "ru"

    def test_empty_text(self, detector):
        result = detector.detect("   ")

        assert result.language == "other"
        assert result.confidence == 0.0

    def test_batch(self, detector):
        results = detector.detect_batch(["机器学习", "hello there"])
        assert [r.language for r in results] == ["zh", "en"]


class TestQuickDetect:
    def test_first_distinctive_script(self, detector):
        assert detector.quick_detect("Hello 世界") == "zh"
        assert detector.quick_detect("カタカナ text") == "ja"

    def test_defaults(self, detector):
        assert detector.quick_detect("plain ascii") == "en"
        assert detector.quick_detect("") == "other"
        assert detector.quick_detect(None) == "other"

    def test_supported_languages(self, detector):
        assert detector.is_supported("ko")
        assert not detector.is_supported("xx")
