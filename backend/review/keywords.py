"""
Keyword selection for the SEO keywords step.

The reviewer keeps a subset of the AI-suggested keywords across four
categories and picks exactly one main keyword. `KeywordSelection` is an
immutable value; every operation returns a new selection. The main keyword,
when set, is always a member of the primary category.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Optional

from dashboard.models import SelectedKeywords


class KeywordCategory(str, Enum):
    """Keyword categories produced by the keyword step."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    LSI = "lsi"
    LONG_TAIL = "long_tail"

    @property
    def output_field(self) -> str:
        """Name of the list in the step's output_data."""
        return f"{self.value}_keywords"


def _unique(keywords: Iterable[Any]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for kw in keywords:
        if isinstance(kw, str) and kw:
            seen.setdefault(kw, None)
    return tuple(seen)


def _prepend(keyword: str, keywords: tuple[str, ...]) -> tuple[str, ...]:
    if keyword in keywords:
        return keywords
    return (keyword,) + keywords


def _keyword_list(output: dict[str, Any], category: KeywordCategory) -> tuple[str, ...]:
    value = output.get(category.output_field) or []
    if not isinstance(value, list):
        return ()
    return _unique(value)


@dataclass(frozen=True)
class KeywordSelection:
    """The reviewer's current keyword choice."""
    main_keyword: str = ""
    primary: tuple[str, ...] = ()
    secondary: tuple[str, ...] = ()
    lsi: tuple[str, ...] = ()
    long_tail: tuple[str, ...] = ()

    @classmethod
    def from_output_data(cls, output: dict[str, Any]) -> "KeywordSelection":
        """Start from everything the step suggested.

        The AI-suggested main keyword wins, else the first primary keyword.
        """
        primary = _keyword_list(output, KeywordCategory.PRIMARY)
        main = output.get("main_keyword")
        if not isinstance(main, str) or not main:
            main = primary[0] if primary else ""
        if main:
            primary = _prepend(main, primary)
        return cls(
            main_keyword=main,
            primary=primary,
            secondary=_keyword_list(output, KeywordCategory.SECONDARY),
            lsi=_keyword_list(output, KeywordCategory.LSI),
            long_tail=_keyword_list(output, KeywordCategory.LONG_TAIL),
        )

    def keywords(self, category: KeywordCategory) -> tuple[str, ...]:
        return getattr(self, category.value)

    def _with(self, category: KeywordCategory, keywords: tuple[str, ...]) -> "KeywordSelection":
        return replace(self, **{category.value: keywords})

    def set_main_keyword(self, keyword: str) -> "KeywordSelection":
        """Choose the main keyword, adding it to primary if needed."""
        primary = _prepend(keyword, self.primary) if keyword else self.primary
        return replace(self, main_keyword=keyword, primary=primary)

    def promote(self, keyword: str, from_category: KeywordCategory) -> "KeywordSelection":
        """Move a keyword into the main slot.

        The displaced main keyword goes back to primary so it is never lost.
        """
        updated = self._with(
            from_category,
            tuple(k for k in self.keywords(from_category) if k != keyword),
        )
        primary = updated.primary
        if self.main_keyword and self.main_keyword != keyword:
            primary = _prepend(self.main_keyword, primary)
        primary = _prepend(keyword, primary)
        return replace(updated, main_keyword=keyword, primary=primary)

    def can_toggle(self, category: KeywordCategory, keyword: str) -> bool:
        # The main keyword only leaves primary through a promotion
        return not (category == KeywordCategory.PRIMARY and keyword == self.main_keyword)

    def toggle(self, category: KeywordCategory, keyword: str) -> "KeywordSelection":
        """Flip membership of a keyword in one category."""
        if not keyword or not self.can_toggle(category, keyword):
            return self
        current = self.keywords(category)
        if keyword in current:
            return self._with(category, tuple(k for k in current if k != keyword))
        return self._with(category, current + (keyword,))

    def select_all(self, category: KeywordCategory, full_list: Iterable[str]) -> "KeywordSelection":
        keywords = _unique(full_list)
        if category == KeywordCategory.PRIMARY and self.main_keyword:
            keywords = (self.main_keyword,) + tuple(k for k in keywords if k != self.main_keyword)
        return self._with(category, keywords)

    def deselect_all(self, category: KeywordCategory) -> "KeywordSelection":
        if category == KeywordCategory.PRIMARY and self.main_keyword:
            return self._with(category, (self.main_keyword,))
        return self._with(category, ())

    def is_submittable(self) -> bool:
        return bool(self.main_keyword)

    def total_selected(self) -> int:
        return sum(len(self.keywords(c)) for c in KeywordCategory)

    def to_selected_keywords(self) -> SelectedKeywords:
        return SelectedKeywords(
            primary=list(self.primary),
            secondary=list(self.secondary),
            lsi=list(self.lsi),
            long_tail=list(self.long_tail),
        )


@dataclass
class KeywordCatalog:
    """What the keyword step suggested, used for rendering and select-all."""
    suggested_main: Optional[str] = None
    options: dict[KeywordCategory, tuple[str, ...]] = field(default_factory=dict)
    density: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_output_data(cls, output: dict[str, Any]) -> "KeywordCatalog":
        raw_density = output.get("keyword_density")
        density: dict[str, float] = {}
        if isinstance(raw_density, dict):
            for kw, value in raw_density.items():
                if isinstance(value, (int, float)):
                    density[kw] = float(value)
        main = output.get("main_keyword")
        return cls(
            suggested_main=main if isinstance(main, str) and main else None,
            options={c: _keyword_list(output, c) for c in KeywordCategory},
            density=density,
        )

    def keywords(self, category: KeywordCategory) -> tuple[str, ...]:
        return self.options.get(category, ())

    def is_ai_suggested(self, keyword: str) -> bool:
        return keyword == self.suggested_main

    def density_of(self, keyword: str) -> Optional[float]:
        return self.density.get(keyword)
