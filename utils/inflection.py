from __future__ import annotations

import re
from typing import List, Protocol, Tuple, Union

import inflect


class Pluralizer(Protocol):
    def singular(self, word: str) -> str: ...

    def plural(self, word: str) -> str: ...

    def add_plural_rule(self, rule: Union[str, re.Pattern], replacement: str) -> None: ...

    def add_singular_rule(self, rule: Union[str, re.Pattern], replacement: str) -> None: ...

    def add_irregular_rule(self, singular: str, plural: str) -> None: ...

    def add_uncountable_rule(self, word: str) -> None: ...


class InflectPluralizer:
    """Pluralizer backed by its own ``inflect`` engine.

    Rules added here only affect this instance, so two services can carry
    different vocabularies.
    """

    def __init__(self):
        self._engine = inflect.engine()
        self._plural_rules: List[Tuple[re.Pattern, str]] = []
        self._singular_rules: List[Tuple[re.Pattern, str]] = []
        self._irregular_plurals: dict[str, str] = {}
        self._irregular_singulars: dict[str, str] = {}
        self._uncountables: set[str] = set()

    @staticmethod
    def _compile(rule: Union[str, re.Pattern]) -> re.Pattern:
        if isinstance(rule, re.Pattern):
            return rule
        return re.compile(rule, re.IGNORECASE)

    @staticmethod
    def _apply(rules, word: str):
        # latest rule wins
        for pattern, replacement in reversed(rules):
            if pattern.search(word):
                return pattern.sub(replacement, word)
        return None

    def add_plural_rule(self, rule: Union[str, re.Pattern], replacement: str) -> None:
        self._plural_rules.append((self._compile(rule), replacement))

    def add_singular_rule(self, rule: Union[str, re.Pattern], replacement: str) -> None:
        self._singular_rules.append((self._compile(rule), replacement))

    def add_irregular_rule(self, singular: str, plural: str) -> None:
        self._irregular_plurals[singular.lower()] = plural
        self._irregular_singulars[plural.lower()] = singular
        self._engine.defnoun(singular, plural)

    def add_uncountable_rule(self, word: str) -> None:
        self._uncountables.add(word.lower())

    def singular(self, word: str) -> str:
        if not word or word.lower() in self._uncountables:
            return word
        if word.lower() in self._irregular_singulars:
            return self._irregular_singulars[word.lower()]
        ruled = self._apply(self._singular_rules, word)
        if ruled is not None:
            return ruled
        return self._engine.singular_noun(word) or word

    def plural(self, word: str) -> str:
        if not word or word.lower() in self._uncountables:
            return word
        if word.lower() in self._irregular_plurals:
            return self._irregular_plurals[word.lower()]
        ruled = self._apply(self._plural_rules, word)
        if ruled is not None:
            return ruled
        return self._engine.plural_noun(word)
