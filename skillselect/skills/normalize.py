"""Token normalization shared by the registry and the signal extractor.

Keywords and context signals must normalize identically so the scorer can
compare them by exact equality.
"""

import re
from typing import Iterable, Optional

# Dotted compounds (next.js, node.js) collapse into one token; a trailing
# "+" or "#" is kept so c++ and c# survive.
_TOKEN_RE = re.compile(r"[a-z0-9]+(?:\.[a-z0-9]+)*[+#]*")

STOPWORDS = frozenset({
    "a", "about", "across", "after", "all", "also", "an", "and", "any", "are",
    "as", "at", "be", "been", "best", "both", "but", "by", "can", "code",
    "covering", "do", "does", "each", "etc", "every", "for", "from", "guide",
    "guideline", "has", "have", "how", "i", "if", "in", "including", "into",
    "is", "it", "its", "like", "more", "most", "no", "not", "of", "on", "or",
    "other", "our", "practice", "rule", "should", "so", "such", "than", "that",
    "the", "their", "them", "then", "these", "they", "this", "those", "to",
    "use", "used", "using", "via", "was", "we", "what", "when", "where",
    "which", "while", "who", "will", "with", "within", "you", "your",
})

# Words ending in "s" that are not plurals.
_SINGULAR_EXCEPTIONS = frozenset({
    "analytics", "devops", "https", "kubernetes", "news", "pandas",
    "postgres", "rails", "redis", "windows",
})

_PROTECTED_SUFFIXES = ("ss", "us", "is", "js", "os")


def depluralize(word: str) -> str:
    """Reduce a plural to its singular form with fixed suffix rules."""
    if len(word) <= 3 or word in _SINGULAR_EXCEPTIONS:
        return word
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("sses", "xes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith(_PROTECTED_SUFFIXES):
        return word[:-1]
    return word


def _accept(token: str) -> bool:
    return token not in STOPWORDS and not (token.isdigit() and len(token) == 1)


def tokenize(text: str) -> list[str]:
    """Split free text into normalized tokens, preserving order and repeats."""
    tokens = []
    for part in _TOKEN_RE.findall(text.lower()):
        token = depluralize(part.replace(".", ""))
        if _accept(token):
            tokens.append(token)
    return tokens


def normalize_token(raw: str) -> Optional[str]:
    """Normalize a single already-tokenized value.

    Package scopes are dropped (``@vue/cli`` -> ``cli``) and separators
    inside the value are removed (``next.js`` -> ``nextjs``). Returns None
    when nothing meaningful remains.
    """
    value = raw.strip().lower()
    if value.startswith("@") and "/" in value:
        value = value.split("/", 1)[1]
    parts = _TOKEN_RE.findall(value)
    if not parts:
        return None
    token = depluralize("".join(part.replace(".", "") for part in parts))
    return token if _accept(token) else None


def extract_keywords(name: str, description: str, extra: Iterable[str] = ()) -> frozenset[str]:
    """Build the keyword set for a skill from its name and description.

    Compound names contribute each part separately, so
    ``nextjs-react-typescript`` yields ``nextjs``, ``react`` and
    ``typescript``.
    """
    keywords = set(tokenize(re.sub(r"[-_/]", " ", name)))
    keywords.update(tokenize(description))
    for value in extra:
        token = normalize_token(value)
        if token:
            keywords.add(token)
    return frozenset(keywords)
