import json

import pytest

from frame.models import FontStyle, Theme, ThemeStyles
from frame.repository import JsonCollection
from frame.themes import BUILTIN_THEMES, DEFAULT_THEME_ID, ThemeRegistry


@pytest.fixture
def styles():
    return ThemeStyles(
        background_color="#000000",
        title_font=FontStyle(family="Inter", size=64, weight="bold"),
        title_color="#ffffff",
        caption_font=FontStyle(family="Inter", size=32, style="italic"),
        caption_color="#eeeeee",
        shadow_color="rgba(255, 255, 255, 0.4)",
    )


def test_list_starts_with_builtins(themes, styles):
    custom = themes.add("Night", styles)
    listed = themes.list()

    assert [t.id for t in listed] == ["default-dark", "light-clean", "retro-funk", custom.id]
    assert not any(t.is_custom for t in listed[:3])


@pytest.mark.parametrize("theme_id", ["no-such-theme", None, "", "custom-gone"])
def test_resolve_unknown_returns_default(themes, theme_id):
    theme = themes.resolve(theme_id)
    assert theme.id == DEFAULT_THEME_ID
    assert theme.name == "Default Dark"


def test_resolve_exact_match(themes):
    assert themes.resolve("retro-funk").styles.title_font.family == "Playfair Display"


def test_add_mints_custom_theme(themes, styles):
    first = themes.add("Night", styles)
    second = themes.add("Night", styles)

    assert first.is_custom and second.is_custom
    assert first.id != second.id
    assert first.id.startswith("custom-")
    assert themes.resolve(first.id) == first


def test_update_custom_theme(themes, styles):
    theme = themes.add("Night", styles)
    themes.update(theme.model_copy(update={"name": "Midnight"}))
    assert themes.resolve(theme.id).name == "Midnight"


def test_update_builtin_is_noop(themes):
    builtin = themes.resolve("light-clean")
    themes.update(builtin.model_copy(update={"name": "Hacked"}))

    assert themes.resolve("light-clean").name == "Light & Clean"
    assert themes.list()[1] is BUILTIN_THEMES[1]


def test_update_cannot_shadow_builtin(themes, styles):
    forged = Theme(id="light-clean", name="Forged", is_custom=True, styles=styles)
    themes.update(forged)
    assert themes.resolve("light-clean").name == "Light & Clean"


def test_delete_custom_and_ignore_builtin(themes, styles):
    theme = themes.add("Night", styles)

    themes.delete(theme.id)
    themes.delete(DEFAULT_THEME_ID)
    themes.delete("unknown")

    assert themes.get(theme.id) is None
    assert themes.resolve(theme.id).id == DEFAULT_THEME_ID
    assert len(themes.list()) == 3


def test_custom_themes_persist(tmp_path, styles):
    path = tmp_path / "custom_themes.json"
    registry = ThemeRegistry(JsonCollection(path, Theme))
    theme = registry.add("Night", styles)

    stored = json.loads(path.read_text())
    assert stored[0]["isCustom"] is True
    assert stored[0]["styles"]["titleFont"]["family"] == "Inter"

    reloaded = ThemeRegistry(JsonCollection(path, Theme))
    assert reloaded.resolve(theme.id) == theme
