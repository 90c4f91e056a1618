"""
Constants and configuration values for Article Insight
"""
import re


# Analysis Constants
class AnalysisConstants:
    # Merge caps
    MAX_MAIN_POINTS = 10
    MAX_TAGS = 8
    MERGED_POINT_IMPORTANCE = 0.5
    DEFAULT_AI_SCORE = 5
    DEFAULT_DIMENSION_SCORE = 5

    # Reading statistics
    WORDS_PER_MINUTE = 300
    CJK_CHAR_PATTERN = re.compile(r'[一-龥]')
    LATIN_WORD_PATTERN = re.compile(r'[a-zA-Z]+')

    # Segmentation
    PARAGRAPH_SPLIT_PATTERN = re.compile(r'\n\n+')
    # Trailing text without terminal punctuation is a sentence too
    SENTENCE_PATTERN = re.compile(r'[^.!?。！？]*[.!?。！？]+|[^.!?。！？]+')
    SEGMENT_JOINER = "\n\n"

    # Result tags
    DIRECT_ANALYSIS_MODEL = "direct-analysis"
    MERGED_ANALYSIS_MODEL = "smart-analyzer-merged"

    UNKNOWN = "unknown"
    FALLBACK_SUMMARY_LENGTH = 50

    SCORE_DIMENSIONS = ("depth", "quality", "practicality", "novelty")


# Open source detection
class OpenSourceConstants:
    GITHUB_PATTERNS = [
        re.compile(r'github\.com/([a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+)'),
        re.compile(r'repository[:\s]+([a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+)', re.IGNORECASE),
    ]

    # Ordered: first match wins
    LICENSE_PATTERNS = [
        (re.compile(r'MIT\s+License', re.IGNORECASE), "MIT"),
        (re.compile(r'Apache\s+License.*2\.0', re.IGNORECASE), "Apache-2.0"),
        (re.compile(r'GNU\s+General\s+Public\s+License', re.IGNORECASE), "GPL"),
        (re.compile(r'BSD\s+3[-\s]Clause', re.IGNORECASE), "BSD-3-Clause"),
        (re.compile(r'ISC\s+License', re.IGNORECASE), "ISC"),
        (re.compile(r'Mozilla\s+Public\s+License', re.IGNORECASE), "MPL-2.0"),
    ]

    CODE_FENCE_LANGUAGE_PATTERN = re.compile(r'```(\w+)\n')


# Model selection
class ModelConstants:
    LANGUAGE_TIERS = ("chinese", "english", "other")
    STAGES = ("preliminary", "analysis", "reflection")

    ENGLISH_TIER_LANGUAGES = {"es", "fr", "de", "pt", "it"}

    DEFAULT_MODELS = {
        "chinese": {
            "preliminary": "deepseek-chat",
            "analysis": "deepseek-chat",
            "reflection": "deepseek-chat",
        },
        "english": {
            "preliminary": "gemini-1.5-flash",
            "analysis": "gemini-1.5-pro",
            "reflection": "gpt-4o",
        },
        "other": {
            "preliminary": "gpt-4o-mini",
            "analysis": "gpt-4o",
            "reflection": "gpt-4o",
        },
    }

    # Environment variable prefix per stage, suffix per tier
    STAGE_ENV_PREFIX = {
        "preliminary": "PRELIMINARY_MODEL",
        "analysis": "ANALYSIS_MODEL",
        "reflection": "REFLECTION_MODEL",
    }
    TIER_ENV_SUFFIX = {"chinese": "ZH", "english": "EN", "other": "OTHER"}

    # Provider -> credential variables (any one present is enough)
    PROVIDER_API_KEYS = {
        "openai": ("OPENAI_API_KEY",),
        "anthropic": ("ANTHROPIC_API_KEY",),
        "deepseek": ("DEEPSEEK_API_KEY",),
        "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
        "custom": ("CUSTOM_API_KEY",),
    }

    DIRECT_ANALYSIS_MODEL = "gpt-4o-mini"


# Relation discovery
class RelationConstants:
    DEFAULT_LIMIT = 5
    DEFAULT_MIN_SIMILARITY = 0.7
    FALLBACK_SIMILARITY = 0.85
    CONFIRMATION_MAX_TOKENS = 10
    SUMMARY_PREVIEW_LENGTH = 200

    GRAPH_DEFAULT_DEPTH = 2
    GRAPH_NEIGHBOUR_LIMIT = 3
    GRAPH_MIN_SIMILARITY = 0.7

    BATCH_MAX_RELATIONS = 5
    BATCH_MIN_SIMILARITY = 0.75


# Feedback & reflection
class RefinementConstants:
    QUALITY_THRESHOLD = 7
    FAILED_REFLECTION_QUALITY = 8
    DEEP_REFLECTION_ROUNDS = 3
    LIGHT_REFLECTION_ROUNDS = 1
    DEEP_ANALYSIS_REFLECTION_ROUNDS = 2
    ISSUE_PREFIX_LENGTH = 50
    TOP_ISSUES = 5
    UNAPPLIED_FEEDBACK_LIMIT = 10


# Queue Constants
class QueueConstants:
    PRELIMINARY = "preliminary"
    DEEP_ANALYSIS = "deep-analysis"
    QUEUES = (PRELIMINARY, DEEP_ANALYSIS)

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ACTIVE_STATUSES = (PENDING, PROCESSING)
    STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED, CANCELLED)

    MIN_PRIORITY = 1
    MAX_PRIORITY = 10
    DEFAULT_PRIORITY = 5

    MAX_ATTEMPTS = {PRELIMINARY: 2, DEEP_ANALYSIS: 3}

    PRELIMINARY_CONTENT_LIMIT = 2000
