"""
Theme catalog: fixed built-in themes plus user-defined custom themes.

Built-ins are immutable and always listed first. resolve() never fails; any
unknown or missing id falls back to the default built-in theme.
"""

import logging
import uuid
from typing import List, Optional

from .models import FontStyle, Theme, ThemeStyles
from .repository import JsonCollection

logger = logging.getLogger(__name__)

DEFAULT_THEME_ID = "default-dark"
CUSTOM_THEME_PREFIX = "custom-"

BUILTIN_THEMES = (
    Theme(
        id="default-dark",
        name="Default Dark",
        styles=ThemeStyles(
            background_color="#1e293b",
            title_font=FontStyle(family="Roboto", size=72, weight="bold"),
            title_color="#e2e8f0",
            caption_font=FontStyle(family="Roboto", size=48),
            caption_color="#cbd5e1",
            shadow_color="rgba(0, 0, 0, 0.5)",
        ),
    ),
    Theme(
        id="light-clean",
        name="Light & Clean",
        styles=ThemeStyles(
            background_color="#f8fafc",
            title_font=FontStyle(family="Lato", size=72, weight="bold"),
            title_color="#0f172a",
            caption_font=FontStyle(family="Lato", size=48),
            caption_color="#334155",
            shadow_color="rgba(0, 0, 0, 0.2)",
        ),
    ),
    Theme(
        id="retro-funk",
        name="Retro Funk",
        styles=ThemeStyles(
            background_color="#f5d0a9",
            title_font=FontStyle(family="Playfair Display", size=80, weight="bold", style="italic"),
            title_color="#4a2c2a",
            caption_font=FontStyle(family="Montserrat", size=48),
            caption_color="#8c4843",
            shadow_color="rgba(0, 0, 0, 0.3)",
        ),
    ),
)


class ThemeRegistry:
    """
    Resolves theme ids to concrete styles.

    Custom themes are kept in order of creation and, when a collection is
    given, saved after every change.
    """

    def __init__(self, collection: Optional[JsonCollection[Theme]] = None):
        self._collection = collection
        self._builtins = {theme.id: theme for theme in BUILTIN_THEMES}
        self._custom: List[Theme] = []

        if collection:
            for theme in collection.load():
                if theme.id in self._builtins:
                    logger.warning(f"Ignoring stored custom theme with built-in id {theme.id}")
                    continue
                self._custom.append(theme.model_copy(update={"is_custom": True}))

    @property
    def default(self) -> Theme:
        return self._builtins[DEFAULT_THEME_ID]

    def list(self) -> List[Theme]:
        return list(BUILTIN_THEMES) + self._custom

    def get(self, theme_id: Optional[str]) -> Optional[Theme]:
        """Exact lookup, no fallback."""
        if theme_id in self._builtins:
            return self._builtins[theme_id]
        for theme in self._custom:
            if theme.id == theme_id:
                return theme
        return None

    def resolve(self, theme_id: Optional[str]) -> Theme:
        theme = self.get(theme_id)
        if theme is None:
            if theme_id:
                logger.info(f"Theme {theme_id} not found, using {DEFAULT_THEME_ID}")
            return self.default
        return theme

    def add(self, name: str, styles: ThemeStyles) -> Theme:
        theme = Theme(
            id=f"{CUSTOM_THEME_PREFIX}{uuid.uuid4().hex}",
            name=name,
            is_custom=True,
            styles=styles,
        )
        self._save(self._custom + [theme])
        logger.info(f"Added custom theme {theme.id} ({name})")
        return theme

    def update(self, theme: Theme) -> None:
        if not theme.is_custom:
            return

        custom = list(self._custom)
        for i, existing in enumerate(custom):
            if existing.id == theme.id:
                custom[i] = theme
                self._save(custom)
                logger.info(f"Updated custom theme {theme.id}")
                return

    def delete(self, theme_id: str) -> None:
        custom = [t for t in self._custom if t.id != theme_id]
        if len(custom) != len(self._custom):
            self._save(custom)
            logger.info(f"Deleted custom theme {theme_id}")

    def _save(self, custom: List[Theme]) -> None:
        if self._collection:
            self._collection.save(custom)
        self._custom = custom
