"""
Heuristic quality scoring for extracted article text.

The validator starts from a score of 100 and subtracts fixed penalties for
each detected problem. Content is valid when the final score is at least 60
and fewer than three issues were found. The extractor relies on these exact
weights: metadata descriptions are accepted at a looser score > 30.
"""

from __future__ import annotations

import re

from .types import ValidationResult

MIN_WORD_COUNT = 100
MAX_WORD_COUNT = 50000
MIN_TITLE_LENGTH = 10
MAX_TITLE_LENGTH = 300
VALID_SCORE = 60

SPAM_PATTERNS = [
    re.compile(r"\b(click here|subscribe now|limited time|act now)\b", re.IGNORECASE),
    re.compile(r"\b(casino|poker|gambling|lottery)\b", re.IGNORECASE),
    re.compile(r"\b(viagra|cialis|pharmacy)\b", re.IGNORECASE),
    re.compile(r"\b(make money fast|work from home|get rich quick)\b", re.IGNORECASE),
]

_SHORT_FRAGMENTS = re.compile(r"(.{1,20}\s*){1,5}\Z")
_ERROR_PAGE = re.compile(r"(error|404|not found|access denied)", re.IGNORECASE)
_LOADING_PAGE = re.compile(r"(loading|please wait|redirecting)", re.IGNORECASE)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_WORD = re.compile(r"\b\w+\b")
_VOWEL_GROUP = re.compile(r"[aeiouy]+")
_SPECIAL_CHAR = re.compile(r"[^\w\s.,!?;:'\"()-]")

STOP_WORDS = frozenset(
    [
        "the", "be", "to", "of", "and", "a", "in", "that", "have", "i",
        "it", "for", "not", "on", "with", "he", "as", "you", "do", "at",
    ]
)


def validate_content(title: str, content: str, url: str = "") -> ValidationResult:
    """Score extracted content and decide whether it is usable.

    Args:
        title: Article title
        content: Extracted article text
        url: Source URL (kept for API symmetry; not scored)

    Returns:
        ValidationResult with verdict, 0-100 score, issue list, word count
        and Flesch-style readability estimate
    """
    issues: list[str] = []
    score = 100.0

    word_count = count_words(content)
    title_length = len(title.strip())

    if word_count < MIN_WORD_COUNT:
        issues.append(f"Content too short: {word_count} words (minimum: {MIN_WORD_COUNT})")
        score -= 30
    if word_count > MAX_WORD_COUNT:
        issues.append(f"Content too long: {word_count} words (maximum: {MAX_WORD_COUNT})")
        score -= 10

    if title_length < MIN_TITLE_LENGTH:
        issues.append(f"Title too short: {title_length} characters")
        score -= 20
    if title_length > MAX_TITLE_LENGTH:
        issues.append(f"Title too long: {title_length} characters")
        score -= 10

    if detect_spam(content):
        issues.append("Spam patterns detected")
        score -= 40

    if is_low_quality(content):
        issues.append("Low quality content detected")
        score -= 35

    readability = readability_score(content)
    if readability < 30:
        issues.append("Poor readability score")
        score -= 15

    if has_too_many_special_characters(content):
        issues.append("Too many special characters")
        score -= 10

    if has_unbalanced_structure(content):
        issues.append("Unbalanced content structure")
        score -= 10

    if not is_english(content):
        issues.append("Non-English content detected")
        score -= 5

    final_score = max(0.0, min(100.0, score))
    return ValidationResult(
        is_valid=final_score >= VALID_SCORE and len(issues) < 3,
        score=final_score,
        issues=issues,
        word_count=word_count,
        readability_score=readability,
    )


def count_words(text: str) -> int:
    return sum(1 for word in text.split() if re.search(r"\w", word))


def detect_spam(content: str) -> bool:
    return any(pattern.search(content) for pattern in SPAM_PATTERNS)


def is_low_quality(content: str) -> bool:
    """Detect empty pages, a handful of short fragments, or error/loading stubs."""
    if not content.strip():
        return True
    # Five fragments of at most 20 characters: more than 100 visible characters can never match.
    if sum(1 for ch in content if not ch.isspace()) <= 100 and _SHORT_FRAGMENTS.match(content):
        return True
    return bool(_ERROR_PAGE.match(content) or _LOADING_PAGE.match(content))


def readability_score(content: str) -> float:
    """Flesch reading ease estimate clamped to [0, 100]."""
    sentences = [s for s in _SENTENCE_SPLIT.split(content) if s.strip()]
    words = count_words(content)
    if not sentences or words == 0:
        return 0.0
    syllables = count_syllables(content)
    avg_words_per_sentence = words / len(sentences)
    avg_syllables_per_word = syllables / words
    flesch = 206.835 - 1.015 * avg_words_per_sentence - 84.6 * avg_syllables_per_word
    return max(0.0, min(100.0, flesch))


def count_syllables(text: str) -> int:
    total = 0
    for word in _WORD.findall(text.lower()):
        syllables = len(_VOWEL_GROUP.findall(word)) or 1
        if word.endswith("e"):
            syllables -= 1
        total += max(1, syllables)
    return total


def has_too_many_special_characters(content: str) -> bool:
    if not content:
        return False
    return len(_SPECIAL_CHAR.findall(content)) / len(content) > 0.1


def has_unbalanced_structure(content: str) -> bool:
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        return True
    avg = sum(len(line) for line in lines) / len(lines)
    very_short = sum(1 for line in lines if len(line) < avg * 0.3)
    very_long = sum(1 for line in lines if len(line) > avg * 3)
    return (very_short + very_long) / len(lines) > 0.4


def is_english(content: str) -> bool:
    words = _WORD.findall(content.lower())
    if not words:
        return False
    hits = sum(1 for word in words if word in STOP_WORDS)
    return hits / len(words) > 0.05


def content_preview(content: str, max_length: int = 300) -> str:
    if len(content) <= max_length:
        return content
    truncated = content[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."


def clean_content(content: str) -> str:
    collapsed = re.sub(r"\s+", " ", content)
    return re.sub(r"[^\x00-\x7F]", "", collapsed).strip()


def estimate_reading_time(content: str, words_per_minute: int = 200) -> int:
    """Reading time in whole minutes, never less than one."""
    return max(1, round(count_words(content) / words_per_minute))
