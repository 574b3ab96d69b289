"""Content classification for captured clipboard text

Assigns a content type, an optional language and a preview to every sample.
Rules are evaluated in priority order and the first match wins; code language
detection is a scored vote over a table of per-language patterns, so adding a
language means adding a row to ``LANGUAGE_PATTERNS``.
"""

import json
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple

from .item import ContentType

MAX_PREVIEW_LENGTH = 200
PREVIEW_ELLIPSIS = "..."
UNKNOWN_SOURCE_APP = "unknown"
# Pattern scans only look at the head of very large samples
MAX_SCAN_LENGTH = 10000

URL_PATTERN = re.compile(
    r"^https?://(?:[-\w.])+(?::[0-9]+)?"
    r"(?:/(?:[\w/_.])*(?:\?(?:[\w&=%.])*)?(?:#(?:[\w.])*)?)?$"
)
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
JSON_ENVELOPE_PATTERN = re.compile(r"^\s*[\{\[][\s\S]*[\}\]]\s*$")
HTML_TAG_PATTERN = re.compile(r"</?[a-z][a-z0-9-]*(?:\s[^<>]*)?/?>")
MARKDOWN_PATTERN = re.compile(
    r"^#{1,6}\s|^\*\*|^__|\[[^\]\n]*\]\([^)\n]*\)|^\s*[-+*]\s",
    re.MULTILINE,
)

# Registration order breaks score ties.
LANGUAGE_PATTERNS: List[Tuple[str, List[Pattern]]] = [
    ("javascript", [
        re.compile(r"(const|let|var)\s+\w+\s*="),
        re.compile(r"function\s+\w+\s*\("),
        re.compile(r"=>\s*\{"),
        re.compile(r"import\s+.*\s+from\s+"),
        re.compile(r"export\s+(default\s+)?"),
    ]),
    ("python", [
        re.compile(r"def\s+\w+\s*\("),
        re.compile(r"class\s+\w+\s*\("),
        re.compile(r"import\s+\w+"),
        re.compile(r"from\s+\w+\s+import"),
        re.compile(r"if\s+__name__\s*==\s*[\"']__main__[\"']"),
    ]),
    ("rust", [
        re.compile(r"fn\s+\w+\s*\("),
        re.compile(r"struct\s+\w+\s*\{"),
        re.compile(r"enum\s+\w+\s*\{"),
        re.compile(r"use\s+\w+"),
        re.compile(r"impl\s+\w+"),
    ]),
    ("go", [
        re.compile(r"func\s+\w+\s*\("),
        re.compile(r"type\s+\w+\s+struct"),
        re.compile(r"package\s+\w+"),
        re.compile(r"import\s+\("),
        re.compile(r"var\s+\w+\s+="),
    ]),
]


@dataclass(frozen=True)
class ContentInfo:
    """Classification result for one clipboard sample"""
    content_type: ContentType
    code_language: Optional[str]
    preview: str
    size: int
    source_app: str = UNKNOWN_SOURCE_APP


def create_preview(content: str, max_length: int = MAX_PREVIEW_LENGTH) -> str:
    """
    Build a word-boundary safe preview

    Args:
        content: Raw clipboard text
        max_length: Maximum preview length before the ellipsis

    Returns:
        Trimmed content, or a truncated slice ending in an ellipsis
    """
    trimmed = content.strip()
    if len(trimmed) <= max_length:
        return trimmed

    truncated = trimmed[:max_length]
    last_space = truncated.rfind(' ')
    if last_space != -1:
        truncated = truncated[:last_space]
    return truncated + PREVIEW_ELLIPSIS


def detect_code_language(content: str) -> Optional[str]:
    """Return the language with the strictly highest pattern score, if any"""
    best_language = None
    best_score = 0
    head = content[:MAX_SCAN_LENGTH]

    for language, patterns in LANGUAGE_PATTERNS:
        score = sum(1 for pattern in patterns if pattern.search(head))
        if score > best_score:
            best_language = language
            best_score = score

    return best_language


def detect_source_app(content: str) -> str:
    """Source application attribution is not implemented"""
    return UNKNOWN_SOURCE_APP


def _is_url(trimmed: str) -> bool:
    return URL_PATTERN.match(trimmed) is not None


def _is_email(trimmed: str) -> bool:
    return EMAIL_PATTERN.match(trimmed) is not None


def _is_json(trimmed: str) -> bool:
    if not JSON_ENVELOPE_PATTERN.match(trimmed):
        return False
    try:
        json.loads(trimmed)
    except (ValueError, RecursionError):
        return False
    return True


def _is_html(content: str) -> bool:
    return HTML_TAG_PATTERN.search(content[:MAX_SCAN_LENGTH]) is not None


def _is_markdown(content: str) -> bool:
    return MARKDOWN_PATTERN.search(content[:MAX_SCAN_LENGTH]) is not None


# (predicate, content type, fixed language); predicates receive (content, trimmed)
Rule = Tuple[Callable[[str, str], bool], ContentType, Optional[str]]

CLASSIFICATION_RULES: List[Rule] = [
    (lambda content, trimmed: _is_url(trimmed), ContentType.URL, None),
    (lambda content, trimmed: _is_email(trimmed), ContentType.EMAIL, None),
    (lambda content, trimmed: _is_json(trimmed), ContentType.JSON, "json"),
    (lambda content, trimmed: _is_html(content), ContentType.HTML, "html"),
    (lambda content, trimmed: _is_markdown(content), ContentType.MARKDOWN, None),
]


class ContentClassifier:
    """Maps raw clipboard text to a type, language and preview"""

    def __init__(self, rules: Optional[List[Rule]] = None):
        self.rules = list(rules) if rules is not None else list(CLASSIFICATION_RULES)

    def classify(self, content: str) -> ContentInfo:
        """
        Classify clipboard content

        Args:
            content: Raw clipboard text

        Returns:
            ContentInfo for the first matching rule, code, or plain text
        """
        trimmed = content.strip()
        preview = create_preview(content)
        size = len(content)
        source_app = detect_source_app(content)

        for predicate, content_type, language in self.rules:
            if predicate(content, trimmed):
                return ContentInfo(content_type, language, preview, size, source_app)

        language = detect_code_language(content)
        if language is not None:
            return ContentInfo(ContentType.CODE, language, preview, size, source_app)

        return ContentInfo(ContentType.TEXT, None, preview, size, source_app)


_default_classifier = ContentClassifier()


def classify(content: str) -> ContentInfo:
    """Classify content with the default rule table"""
    return _default_classifier.classify(content)
