"""Prompt loading, selection and rendering for article summaries."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path


_PROMPT_DIR = Path(__file__).resolve().parent.parent / "prompts"

PROMPT_MAX_TOKENS = {
    "primary": 150,
    "technical": 150,
    "general": 120,
    "fallback": 100,
}

TECHNICAL_KEYWORDS = [
    "api", "framework", "library", "algorithm", "performance", "benchmark",
    "architecture", "database", "programming", "code", "implementation",
    "javascript", "python", "rust", "go", "typescript", "react", "vue",
    "docker", "kubernetes", "aws", "cloud", "devops", "ml", "ai",
    "neural", "machine learning", "deep learning", "gpu", "cpu",
]

GENERAL_KEYWORDS = [
    "business", "startup", "funding", "ipo", "acquisition", "policy",
    "regulation", "privacy", "security breach", "market", "economy",
    "social", "society", "ethics", "law", "legal",
]

MIN_KEYWORD_SCORE = 2


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    path = _PROMPT_DIR / f"{name}.md"
    return path.read_text(encoding="utf-8").strip()


def _render_template(name: str, **values: str) -> str:
    template = _load_template(name)
    return template.format(**values)


def select_prompt(title: str, content: str) -> str:
    """Pick "technical", "general" or "primary" from keyword hits in title and content.

    A keyword counts once if it occurs anywhere in either text. The winning
    family needs a strictly higher score and at least two hits.
    """
    title_lower = title.lower()
    content_lower = content.lower()

    def score(keywords: list[str]) -> int:
        return sum(1 for kw in keywords if kw in title_lower or kw in content_lower)

    technical = score(TECHNICAL_KEYWORDS)
    general = score(GENERAL_KEYWORDS)
    if technical > general and technical >= MIN_KEYWORD_SCORE:
        return "technical"
    if general > technical and general >= MIN_KEYWORD_SCORE:
        return "general"
    return "primary"


def build_summary_prompt(name: str, title: str, content: str) -> str:
    return _render_template(name, title=title.strip(), content=content.strip())


def system_prompt() -> str:
    return _load_template("system")
