"""
Question Analysis

Pure text heuristics over a raw exam question:
1. Chapter context (insurance / business / general)
2. Negative phrasing ("NOT correct", "except", ...)
3. Multi-statement layout (I. ... II. ... III. ...)
4. Option and statement extraction
5. "All of the above" style options

Nothing here raises on oddly shaped input. When a question does not look like
a textbook exam question the extractors return empty results and the flags
stay False.
"""

import re
from dataclasses import dataclass

from exam_rag.models import AnswerOption, ChapterContext


_INSURANCE_RE = re.compile(
    r"life insurance|policy|nominee|beneficiary|statutory trust|assignment"
)
_BUSINESS_RE = re.compile(
    r"sole proprietor|partnership|company|shareholder|business owner|buy-sell|key person"
)

_CHAPTER_RULES = (
    (ChapterContext.INSURANCE, _INSURANCE_RE),
    (ChapterContext.BUSINESS, _BUSINESS_RE),
)

_NEGATIVE_PHRASES = (
    "not correct",
    "is not correct",
    "are not correct",
    "except",
    "which of the following is not",
    "incorrect",
    "not true",
    "no longer",
    "not relevant",
)
_NEGATIVE_PATTERNS = (
    re.compile(r"which .*is.* not"),
    re.compile(r"which .*are.* not"),
)

# Multi-statement heuristics. False positives are accepted.
_ROMAN_MARKER_RE = re.compile(r"\bI{1,3}\.|\bI{1,3}\)|\bI{1,4}\b[.)]", re.IGNORECASE)
_NUMBERED_PAIR_RE = re.compile(r"\bI\s*[.)].*\bII\s*[.)]")
_BARE_SEQUENCE_RE = re.compile(r"\bI\b.*\bII\b.*\bIII\b")
_STATEMENT_LIST_RE = re.compile(
    r"which (?:of the following |)(?:statement|statements)(?:\(s\)|s | )"
    r"(?:is|are) (?:correct|true|false|not correct|incorrect)",
    re.IGNORECASE,
)
_BARE_ROMAN_RE = re.compile(r"\bI{1,4}\b")

# Option letters must stand alone so "USA." or "Plan C." never open an option.
_OPTION_RE = re.compile(
    r"(?<![A-Za-z0-9])([A-D])\.\s*(.*?)(?=\s*(?<![A-Za-z0-9])[A-D]\.|\Z)", re.DOTALL
)
_STATEMENT_MARKER_RE = re.compile(r"\bI{1,4}[.)]")
_FIRST_OPTION_RE = re.compile(r"(?<![A-Za-z0-9])A\.")

_ALL_OF_ABOVE_PHRASES = ("all of the above", "all the above", "all are correct")
_ALL_OF_ABOVE_EXACT = "all of these"


@dataclass(frozen=True)
class QuestionAnalysis:
    """Everything the pipeline needs to know about a question's shape."""
    chapter_context: ChapterContext
    is_negative: bool
    has_multiple_statements: bool
    has_all_of_above: bool
    options: tuple[AnswerOption, ...] = ()
    statements: tuple[str, ...] = ()

    @property
    def is_very_complex(self) -> bool:
        """Multi-statement, negatively phrased and offering "all of the above"."""
        return is_very_complex(
            self.has_multiple_statements, self.has_all_of_above, self.is_negative
        )


def detect_chapter_context(text: str) -> ChapterContext:
    """Classify a question by keyword. Insurance terms win over business terms."""
    lowered = text.lower()
    for context, pattern in _CHAPTER_RULES:
        if pattern.search(lowered):
            return context
    return ChapterContext.GENERAL


def contains_negative_logic(text: str) -> bool:
    """Check whether the question asks for the wrong/false option."""
    lowered = text.lower()
    if any(phrase in lowered for phrase in _NEGATIVE_PHRASES):
        return True
    return any(pattern.search(lowered) for pattern in _NEGATIVE_PATTERNS)


def detect_multiple_statements(text: str) -> bool:
    """
    Check whether the question lists Roman-numeral statements.

    Any one of three signals is enough:
    - a marker such as ``I.``, ``II)`` or ``iii.``
    - ``I`` ... ``II`` ... ``III`` tokens on one line, or ``I.`` ... ``II.``
    - "which of the following statements are true" phrasing together with a
      bare Roman numeral token
    """
    if _ROMAN_MARKER_RE.search(text):
        return True
    if _NUMBERED_PAIR_RE.search(text) or _BARE_SEQUENCE_RE.search(text):
        return True
    return bool(_STATEMENT_LIST_RE.search(text) and _BARE_ROMAN_RE.search(text))


def extract_options(text: str) -> list[AnswerOption]:
    """
    Extract ``A.`` to ``D.`` options in the order they appear.

    Option text runs up to the next option marker or the end of the question
    and may span lines. No marker means no options.
    """
    return [
        AnswerOption(letter=match.group(1), text=match.group(2).strip())
        for match in _OPTION_RE.finditer(text)
    ]


def extract_statements(text: str) -> list[str]:
    """
    Extract the Roman-numeral statements that precede the options.

    The statement block starts at the first ``I.``/``I)`` style marker and ends
    at the first ``A.`` after it (or the end of the text). Every marker inside
    the block starts a new statement, so a stray "Part I." inside a statement
    splits it too.
    """
    first = _STATEMENT_MARKER_RE.search(text)
    if not first:
        return []

    end = _FIRST_OPTION_RE.search(text, first.end())
    section = text[first.start():end.start() if end else len(text)]

    markers = list(_STATEMENT_MARKER_RE.finditer(section))
    statements = []
    for i, marker in enumerate(markers):
        chunk_end = markers[i + 1].start() if i + 1 < len(markers) else len(section)
        statements.append(section[marker.end():chunk_end].strip())
    return statements


def has_all_of_above_option(options: list[AnswerOption]) -> bool:
    """Check for an "all of the above" style option."""
    for option in options:
        lowered = option.text.lower()
        if any(phrase in lowered for phrase in _ALL_OF_ABOVE_PHRASES):
            return True
        if lowered == _ALL_OF_ABOVE_EXACT:
            return True
    return False


def is_very_complex(
    has_multiple_statements: bool, has_all_of_above: bool, is_negative: bool
) -> bool:
    """Gate for the two-stage verification protocol."""
    return has_multiple_statements and has_all_of_above and is_negative


def analyze_question(text: str) -> QuestionAnalysis:
    """Run every heuristic once over the raw question text."""
    has_multiple_statements = detect_multiple_statements(text)
    options = extract_options(text)
    statements = extract_statements(text) if has_multiple_statements else []
    return QuestionAnalysis(
        chapter_context=detect_chapter_context(text),
        is_negative=contains_negative_logic(text),
        has_multiple_statements=has_multiple_statements,
        has_all_of_above=has_all_of_above_option(options),
        options=tuple(options),
        statements=tuple(statements),
    )
