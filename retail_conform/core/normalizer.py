"""
Categorical normalization against ordered keyword rule tables.

Free-text variants ("credit card", "VISA CREDIT", "Credit") are mapped to
one canonical token per attribute. Rules are evaluated in order and the
first rule with a keyword contained in the input wins. Unmatched input is
passed through upper-cased and trimmed so that a new variant never blocks
a load; it simply shows up as a new token.
"""

from typing import Iterable

from pydantic import BaseModel, Field, field_validator

PASSTHROUGH = "passthrough"


class VocabularyRule(BaseModel):
    """
    One rule of a vocabulary.

    Attributes:
        token: Canonical token emitted when the rule matches
        keywords: Substrings that select this rule (case-insensitive)
    """

    token: str = Field(..., min_length=1)
    keywords: tuple[str, ...] = Field(..., min_length=1)

    @field_validator("keywords")
    @classmethod
    def upper_keywords(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Store keywords upper-cased so matching is case-insensitive."""
        keywords = tuple(keyword.strip().upper() for keyword in v)
        if any(keyword == "" for keyword in keywords):
            raise ValueError("keywords must be non-blank")
        return keywords

    class Config:
        frozen = True


class Vocabulary(BaseModel):
    """
    Ordered rule table for one categorical attribute.

    An empty rule table is a pure upper-case passthrough (category, brand).
    """

    name: str
    rules: tuple[VocabularyRule, ...] = ()

    @property
    def tokens(self) -> list[str]:
        return [rule.token for rule in self.rules]

    class Config:
        frozen = True


def normalize(raw_text: str | None, vocabulary: Vocabulary) -> str | None:
    """
    Map free text to its canonical token.

    Args:
        raw_text: Raw categorical text
        vocabulary: Ordered rule table

    Returns:
        Canonical token, the upper-cased trimmed input when no rule matches,
        or None for blank input
    """
    if raw_text is None:
        return None

    text = raw_text.strip().upper()
    if text == "":
        return None

    for rule in vocabulary.rules:
        if any(keyword in text for keyword in rule.keywords):
            return rule.token

    return text


class CategoricalNormalizer:
    """
    Holds the vocabularies of a rule set and normalizes by vocabulary name.
    """

    def __init__(self, vocabularies: Iterable[Vocabulary]):
        """
        Initialize the normalizer.

        Args:
            vocabularies: Vocabularies keyed by their name
        """
        self.vocabularies: dict[str, Vocabulary] = {
            vocabulary.name: vocabulary for vocabulary in vocabularies
        }
        self.vocabularies.setdefault(PASSTHROUGH, Vocabulary(name=PASSTHROUGH))

    def normalize(self, raw_text: str | None, vocabulary_name: str) -> str | None:
        """
        Normalize raw text with the named vocabulary.

        Raises:
            KeyError: If the vocabulary is unknown
        """
        vocabulary = self.vocabularies.get(vocabulary_name)
        if vocabulary is None:
            raise KeyError(f"Unknown vocabulary: {vocabulary_name}")
        return normalize(raw_text, vocabulary)

    def is_canonical(self, token: str | None, vocabulary_name: str) -> bool:
        """Return whether ``token`` is one of the vocabulary's canonical tokens."""
        return token in self.vocabularies[vocabulary_name].tokens
