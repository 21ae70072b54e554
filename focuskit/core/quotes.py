"""Quote book: search, categories and favorites over the quote mutation engine."""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from focuskit.models import (
    AI_GENERATED_CATEGORY,
    CUSTOM_CATEGORY,
    LocalId,
    Quote,
    QuoteState,
    RecordId,
)
from focuskit.sync.mutations import OptimisticMutationEngine, SyncReport

logger = logging.getLogger(__name__)

CompleteText = Callable[[str], str]

PSEUDO_CATEGORIES = ("all", "favorites", "custom", "ai")
DEFAULT_AI_AUTHOR = "AI Assistant"
AUTHOR_DASH = "—"

GENERATE_PROMPT = (
    'Generate an inspirational quote based on this prompt: "{prompt}". '
    "Return only the quote text without quotes, followed by a line break, "
    f'then "{AUTHOR_DASH} [Author Name]" where Author Name should be an '
    "appropriate fictional or real author that fits the quote's style and theme."
)


@dataclass(frozen=True)
class QuoteEntry:
    """A quote as listed, with its favorite flag."""

    quote: Quote
    is_favorite: bool

    @property
    def is_ai_generated(self) -> bool:
        return self.quote.is_ai_generated


def parse_generated(text: str) -> tuple[str, str]:
    """Split ``"<quote>\\n— <author>"`` into content and author.

    Raises:
        ValueError: If the text holds no quote.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines or lines[0].startswith(AUTHOR_DASH):
        raise ValueError("Completion returned no quote text")
    content = lines[0].strip("\"'")
    author_line = next((line for line in lines[1:] if AUTHOR_DASH in line), None)
    author = author_line.replace(AUTHOR_DASH, "", 1).strip() if author_line else ""
    return content, author or DEFAULT_AI_AUTHOR


class QuoteBook:
    """Quote operations plus persisted favorites, search term and category."""

    def __init__(
        self,
        engine: OptimisticMutationEngine[Quote],
        complete_text: Optional[CompleteText] = None,
    ) -> None:
        self._engine = engine
        self._complete_text = complete_text
        engine.on_promoted(self._on_promoted)

    @property
    def engine(self) -> OptimisticMutationEngine[Quote]:
        return self._engine

    @property
    def view(self) -> QuoteState:
        return self._engine.state.get()

    @property
    def pending_count(self) -> int:
        return self._engine.pending_count

    def all_quotes(self) -> list[QuoteEntry]:
        favorites = set(self.view.favorites)
        return [QuoteEntry(q, q.id.value in favorites) for q in self._engine.records()]

    def quotes(self) -> list[QuoteEntry]:
        """Quotes matching the search term and selected category."""
        view = self.view
        term = view.search_term.lower()
        category = view.selected_category
        result = []
        for entry in self.all_quotes():
            quote = entry.quote
            if term and term not in quote.content.lower() and (
                not quote.author or term not in quote.author.lower()
            ):
                continue
            if not (
                category == "all"
                or (category == "favorites" and entry.is_favorite)
                or (category == "custom" and quote.is_custom)
                or (category == "ai" and entry.is_ai_generated)
                or quote.category == category
            ):
                continue
            result.append(entry)
        return result

    def categories(self) -> list[str]:
        seen = list(PSEUDO_CATEGORIES)
        for entry in self.all_quotes():
            category = entry.quote.category
            if category and category not in seen:
                seen.append(category)
        return seen

    def add(
        self,
        content: str,
        author: Optional[str] = None,
        category: Optional[str] = None,
        ai_generated: bool = False,
    ) -> Quote:
        """Create a custom quote. Without a category it is filed as Custom or AI Generated."""
        return self._engine.create(
            {
                "content": content.strip(),
                "author": author,
                "category": category or (AI_GENERATED_CATEGORY if ai_generated else CUSTOM_CATEGORY),
                "is_custom": True,
            }
        )

    def edit(self, quote_id: RecordId, **changes) -> Optional[Quote]:
        return self._engine.update(quote_id, changes)

    def remove(self, quote_id: RecordId) -> bool:
        quote = self._engine.get(quote_id)
        target = quote.id if quote is not None else quote_id
        if target.value in self.view.favorites:
            self._engine.update_view(
                favorites=[f for f in self.view.favorites if f != target.value]
            )
        return self._engine.delete(target)

    def toggle_favorite(self, quote_id: RecordId) -> bool:
        """Flip the favorite flag. Returns the new flag."""
        quote = self._engine.get(quote_id)
        value = quote.id.value if quote is not None else quote_id.value
        favorites = list(self.view.favorites)
        if value in favorites:
            favorites.remove(value)
            is_favorite = False
        else:
            favorites.append(value)
            is_favorite = True
        self._engine.update_view(favorites=favorites)
        return is_favorite

    def set_search_term(self, term: str) -> None:
        self._engine.update_view(search_term=term)

    def set_selected_category(self, category: str) -> None:
        self._engine.update_view(selected_category=category)

    def random_quote(self) -> Optional[Quote]:
        quotes = self._engine.records()
        if not quotes:
            return None
        return random.choice(quotes)

    def generate(self, prompt: str, complete_text: Optional[CompleteText] = None) -> Quote:
        """Ask the completion function for a quote and store it as AI Generated.

        Raises:
            ValueError: If no completion function is configured or it returns no quote.
        """
        complete = complete_text or self._complete_text
        if complete is None:
            raise ValueError("AI not configured: no text completion function")
        content, author = parse_generated(complete(GENERATE_PROMPT.format(prompt=prompt)))
        return self.add(content, author=author, category=AI_GENERATED_CATEGORY)

    def sync(self) -> SyncReport:
        return self._engine.sync_local_only()

    def _on_promoted(self, promotion: tuple[LocalId, Quote]) -> None:
        local_id, quote = promotion
        favorites = self.view.favorites
        if local_id.value in favorites:
            self._engine.update_view(
                favorites=[quote.id.value if f == local_id.value else f for f in favorites]
            )
