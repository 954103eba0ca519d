"""Tokenizer, stop words and canonical-phrase comparison shared by all scoring.

Matching is purely lexical. Two phrases name the same option when their
canonical forms are equal or one contains the other ("ocean" vs "in the
ocean"). The containment rule trades precision for recall: short generic
phrases such as "home" will match "home run".
"""

import re

STOP_WORDS = frozenset({
    "a", "an", "and", "the", "in", "on", "at", "of", "to", "for",
    "with", "is", "it", "its", "as", "by", "from", "or", "be",
})

NOT_IN_BOOK = "Not in this book"

MAX_OPTION_WORDS = 10

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_LEADING_PREPOSITION = re.compile(r"^(?:in|on|at)\s+", re.IGNORECASE)
_LEADING_ARTICLE = re.compile(r"^(?:a|an|the)\s+", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[.?!]+$")
_WHERE = re.compile(r"^\s*where\b", re.IGNORECASE)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def tokenize(text: str) -> list[str]:
    """Lower-case content words of *text*, in order, without stop words."""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) > 1 and t not in STOP_WORDS]


def token_set(*texts: str) -> set[str]:
    out: set[str] = set()
    for text in texts:
        out.update(tokenize(text))
    return out


def strip_leading_preposition(text: str) -> str:
    """'In the ocean' -> 'the ocean'."""
    return _LEADING_PREPOSITION.sub("", collapse_whitespace(text), count=1)


def canonicalize(text: str) -> str:
    """Canonical form used for equality and containment checks."""
    value = collapse_whitespace((text or "").lower())
    value = _LEADING_PREPOSITION.sub("", value, count=1)
    value = _NON_ALNUM.sub(" ", value)
    return collapse_whitespace(value)


def same_option(a: str, b: str) -> bool:
    """True when *a* and *b* would read as the same answer."""
    ca, cb = canonicalize(a), canonicalize(b)
    if not ca or not cb:
        return ca == cb
    return ca == cb or ca in cb or cb in ca


def is_where_question(question: str) -> bool:
    return bool(_WHERE.match(question or ""))


def is_not_in_book(text: str) -> bool:
    return collapse_whitespace(text).lower() == NOT_IN_BOOK.lower()


def simplify_option_text(text: str, question: str) -> str:
    """Shorten a model phrase into card text.

    Drops trailing sentence punctuation, turns answers to "where" questions
    into location phrases ("the coral reef" -> "In coral reef"), caps the
    length and capitalises the first letter.
    """
    value = _TRAILING_PUNCT.sub("", collapse_whitespace(text)).strip()
    if not value:
        return ""
    if is_not_in_book(value):
        return NOT_IN_BOOK

    if is_where_question(question):
        value = _LEADING_ARTICLE.sub("", value, count=1)
        if not _LEADING_PREPOSITION.match(value):
            value = f"In {value.lower()}"

    words = value.split(" ")
    if len(words) > MAX_OPTION_WORDS:
        value = " ".join(words[:MAX_OPTION_WORDS])

    return value[0].upper() + value[1:]
