"""
Composition pipeline tests.

Frames are decoded back with Pillow and checked pixel by pixel at the
coordinates the layout engine reports.
"""

import io

import pytest
from PIL import Image

from conftest import assert_pixel, make_png
from frame.blob_store import MemoryBlobStore
from frame.errors import FontLoadError, NoActiveItemsError
from frame.models import ColorBackground, FontStyle, Group, ImageBackground, Product
from frame.pipeline import BackgroundSource, CompositionPipeline, ItemStatus, frame_filename
from frame.renderer import FontLoader, FrameRenderer

PLACEHOLDER_RGB = (0x33, 0x41, 0x55)
DEFAULT_DARK_RGB = (0x1E, 0x29, 0x3B)


class CountingStore(MemoryBlobStore):
    def __init__(self):
        super().__init__()
        self.batches = []

    async def get_many(self, blob_ids):
        blob_ids = list(blob_ids)
        self.batches.append(blob_ids)
        return await super().get_many(blob_ids)


class BrokenFontLoader(FontLoader):
    def load(self, font):
        raise FontLoadError("font service unavailable")


def decode(result):
    return Image.open(io.BytesIO(result.png)).convert("RGBA")


async def snacks_group(store, background=None):
    chips = await store.put(make_png("#ff0000"))
    soda = await store.put(make_png("#0000ff"))
    candy = await store.put(make_png("#00ff00"))
    return Group(
        id="g1",
        name="Snacks",
        products=[
            Product(id="p1", name="Chips", image_id=chips, is_active=True),
            Product(id="p2", name="Soda", image_id=soda, is_active=True),
            Product(id="p3", name="Candy", image_id=candy, is_active=False),
        ],
        background=background,
    )


class TestComposition:

    @pytest.mark.asyncio
    async def test_snacks_end_to_end(self, default_theme):
        store = CountingStore()
        group = await snacks_group(store)

        result = await CompositionPipeline(store).compose(group, default_theme)
        image = decode(result)

        assert image.size == result.size == (960, 700)
        assert (result.layout.columns, result.layout.rows) == (2, 1)
        assert [(i.cell.x, i.cell.y) for i in result.items] == [(60, 180), (500, 180)]
        assert [i.name for i in result.items] == ["Chips", "Soda"]
        assert all(i.status is ItemStatus.RENDERED for i in result.items)
        assert result.background is BackgroundSource.THEME

        assert_pixel(image, (260, 380), (255, 0, 0))
        assert_pixel(image, (700, 380), (0, 0, 255))
        assert_pixel(image, (5, 5), DEFAULT_DARK_RGB)

        # One batched read, only for active products
        assert store.batches == [[group.products[0].image_id, group.products[1].image_id]]

    @pytest.mark.asyncio
    async def test_no_active_items_fails_without_loading(self, default_theme):
        store = CountingStore()
        group = Group(id="g", name="Empty", products=[
            Product(id="p", name="Off", image_id="x", is_active=False),
        ])

        with pytest.raises(NoActiveItemsError) as exc_info:
            await CompositionPipeline(store).compose(group, default_theme)

        assert store.batches == []
        assert exc_info.value.to_dict()["details"]["group_id"] == "g"

    @pytest.mark.asyncio
    async def test_empty_group_fails(self, blob_store, default_theme):
        with pytest.raises(NoActiveItemsError):
            await CompositionPipeline(blob_store).compose(Group(id="g", name="None"), default_theme)

    @pytest.mark.asyncio
    async def test_missing_item_gets_placeholder_and_rendering_continues(self, blob_store, default_theme):
        present = await blob_store.put(make_png("#00ff00"))
        group = Group(id="g", name="Gaps", products=[
            Product(id="a", name="Gone", image_id="deleted-blob"),
            Product(id="b", name="Here", image_id=present),
        ])

        result = await CompositionPipeline(blob_store).compose(group, default_theme)
        image = decode(result)

        missing, rendered = result.items
        assert missing.status is ItemStatus.MISSING
        assert (missing.cell.x, missing.cell.y) == (60, 180)
        assert_pixel(image, (missing.cell.x + 5, missing.cell.y + 5), PLACEHOLDER_RGB, tolerance=0)
        assert_pixel(image, (missing.cell.x + 394, missing.cell.y + 394), PLACEHOLDER_RGB, tolerance=0)

        assert rendered.status is ItemStatus.RENDERED
        assert_pixel(image, (rendered.cell.x + 200, rendered.cell.y + 200), (0, 255, 0))

    @pytest.mark.asyncio
    async def test_undecodable_item_is_labelled_separately(self, blob_store, default_theme):
        broken = await blob_store.put(b"definitely not an image")
        group = Group(id="g", name="Broken", products=[
            Product(id="a", name="Corrupt", image_id=broken),
        ])

        result = await CompositionPipeline(blob_store).compose(group, default_theme)

        assert result.items[0].status is ItemStatus.DECODE_ERROR
        assert_pixel(decode(result), (65, 185), PLACEHOLDER_RGB, tolerance=0)

    @pytest.mark.asyncio
    async def test_missing_and_broken_placeholders_differ(self, blob_store, default_theme):
        broken = await blob_store.put(b"\x89PNG garbage")
        pipeline = CompositionPipeline(blob_store)

        missing = await pipeline.compose(
            Group(id="g", name="", products=[Product(id="a", name="x", image_id="gone")]), default_theme)
        failed = await pipeline.compose(
            Group(id="g", name="", products=[Product(id="a", name="x", image_id=broken)]), default_theme)

        assert missing.items[0].status is ItemStatus.MISSING
        assert failed.items[0].status is ItemStatus.DECODE_ERROR
        cell = missing.items[0].cell
        box = cell.box
        assert decode(missing).crop(box).tobytes() != decode(failed).crop(box).tobytes()


class TestBackground:

    @pytest.mark.asyncio
    async def test_color_background(self, blob_store, default_theme):
        group = await snacks_group(blob_store, ColorBackground(value="#ff00ff"))

        result = await CompositionPipeline(blob_store).compose(group, default_theme)

        assert result.background is BackgroundSource.COLOR
        assert_pixel(decode(result), (5, 5), (255, 0, 255), tolerance=0)

    @pytest.mark.asyncio
    async def test_image_background_is_stretched(self, blob_store, default_theme):
        bg = await blob_store.put(make_png("#ffff00", size=(8, 8)))
        group = await snacks_group(blob_store, ImageBackground(image_id=bg))

        result = await CompositionPipeline(blob_store).compose(group, default_theme)
        image = decode(result)

        assert result.background is BackgroundSource.IMAGE
        assert_pixel(image, (5, 5), (255, 255, 0))
        assert_pixel(image, (955, 695), (255, 255, 0))

    @pytest.mark.asyncio
    async def test_missing_background_falls_back_to_theme(self, blob_store, default_theme):
        group = await snacks_group(blob_store, ImageBackground(image_id="gone"))

        result = await CompositionPipeline(blob_store).compose(group, default_theme)

        assert result.background is BackgroundSource.THEME_FALLBACK
        assert_pixel(decode(result), (5, 5), DEFAULT_DARK_RGB, tolerance=0)

    @pytest.mark.asyncio
    async def test_undecodable_background_falls_back_to_theme(self, blob_store, themes):
        bg = await blob_store.put(b"<html>not an image</html>")
        group = await snacks_group(blob_store, ImageBackground(image_id=bg))
        theme = themes.resolve("light-clean")

        result = await CompositionPipeline(blob_store).compose(group, theme)

        assert result.background is BackgroundSource.THEME_FALLBACK
        assert_pixel(decode(result), (5, 5), (0xF8, 0xFA, 0xFC), tolerance=0)


class TestFonts:

    @pytest.mark.asyncio
    async def test_font_failure_never_blocks_composition(self, blob_store, default_theme):
        group = await snacks_group(blob_store)
        pipeline = CompositionPipeline(blob_store, renderer=FrameRenderer(BrokenFontLoader()))

        result = await pipeline.compose(group, default_theme)

        assert sorted(result.font_fallbacks) == ['48px "Roboto"', 'bold 72px "Roboto"']
        assert decode(result).size == (960, 700)
        assert all(i.status is ItemStatus.RENDERED for i in result.items)

    def test_substitute_is_cached(self):
        class CountingLoader(FontLoader):
            opens = 0

            def _open(self, name, size):
                CountingLoader.opens += 1
                raise OSError(name)

        loader = CountingLoader()
        style = FontStyle(family="sans-serif", size=32)

        first, substituted = loader.load_or_substitute(style)
        opens_after_first = CountingLoader.opens
        second, _ = loader.load_or_substitute(style)

        assert substituted
        assert second is first
        assert opens_after_first > 0
        assert CountingLoader.opens == opens_after_first


def test_result_data_url():
    from frame.renderer import to_data_url
    assert to_data_url(b"abc") == "data:image/png;base64,YWJj"


def test_frame_filename():
    from datetime import date
    assert frame_filename("Snacks", date(2024, 5, 1)) == "Snacks-2024-05-01.png"
