"""
CompositionPipeline - Main orchestrator for frame generation.

Combines:
- BlobStore: batched, concurrent image reads
- LayoutEngine: grid math
- FrameRenderer: Pillow drawing

Workflow:
1. Validate (active products only, at least one)
2. Load resources (fonts and blobs, concurrently)
3. Render (background, title, items in order)
4. Encode PNG

Missing or broken resources never abort a composition; each has a fallback
(substitute font, theme background color, placeholder tile).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from PIL import Image

from .blob_store import BlobStore
from .errors import FontLoadError, ImageDecodeError, NoActiveItemsError
from .layout import CellSpec, GridLayout, LayoutEngine
from .models import ColorBackground, FontStyle, Group, ImageBackground, Theme
from .renderer import (
    AnyFont,
    DECODE_ERROR_LABEL,
    MISSING_LABEL,
    FrameRenderer,
    decode_image,
    font_string,
    to_data_url,
)

logger = logging.getLogger(__name__)


class CompositionState(Enum):
    VALIDATING = "validating"
    LOADING_RESOURCES = "loading_resources"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


class ItemStatus(Enum):
    RENDERED = "rendered"
    MISSING = "missing"            # No bytes in the store
    DECODE_ERROR = "decode_error"  # Bytes present but not an image


class BackgroundSource(Enum):
    COLOR = "color"                    # Group color background
    IMAGE = "image"                    # Group image background
    THEME = "theme"                    # No group background set
    THEME_FALLBACK = "theme_fallback"  # Image background missing or undecodable


@dataclass
class ItemOutcome:
    """How one active product ended up on the canvas."""
    product_id: str
    name: str
    cell: CellSpec
    status: ItemStatus


@dataclass
class CompositionResult:
    """Encoded frame plus a record of every fallback taken."""
    png: bytes
    layout: GridLayout
    items: List[ItemOutcome]
    background: BackgroundSource
    font_fallbacks: List[str] = field(default_factory=list)

    @property
    def size(self) -> Tuple[int, int]:
        return self.layout.size

    def to_data_url(self) -> str:
        return to_data_url(self.png)


def frame_filename(group_name: str, day: Optional[date] = None) -> str:
    """Download name for a frame, e.g. 'Snacks-2024-05-01.png'."""
    day = day or date.today()
    return f"{group_name}-{day.isoformat()}.png"


class CompositionPipeline:
    """
    Turns a group and its resolved theme into an encoded frame.

    Holds no state between calls, so one instance can serve concurrent
    compositions. Theme resolution happens before compose() is called.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        layout_engine: Optional[LayoutEngine] = None,
        renderer: Optional[FrameRenderer] = None,
    ):
        self.blob_store = blob_store
        self.layout_engine = layout_engine or LayoutEngine()
        self.renderer = renderer or FrameRenderer()

    def _enter(self, group: Group, state: CompositionState) -> None:
        logger.debug(f"Frame {group.id}: {state.value}")

    async def compose(self, group: Group, theme: Theme) -> CompositionResult:
        """
        Compose a frame.

        Args:
            group: Group to draw; only active products are included
            theme: Already-resolved theme

        Returns:
            CompositionResult with PNG bytes

        Raises:
            NoActiveItemsError: if the group has no active products
        """
        self._enter(group, CompositionState.VALIDATING)
        products = group.active_products
        if not products:
            self._enter(group, CompositionState.FAILED)
            logger.warning(f"No active products in group {group.id} ({group.name})")
            raise NoActiveItemsError(group.id, group.name)

        self._enter(group, CompositionState.LOADING_RESOURCES)
        styles = theme.styles
        blob_ids = [p.image_id for p in products]
        if isinstance(group.background, ImageBackground):
            blob_ids.append(group.background.image_id)

        logger.info(f"Composing '{group.name}': {len(products)} items, theme={theme.id}")
        (title_font, caption_font, font_fallbacks), blobs = await asyncio.gather(
            self._load_fonts(styles.title_font, styles.caption_font),
            self.blob_store.get_many(blob_ids),
        )

        self._enter(group, CompositionState.RENDERING)
        layout = self.layout_engine.calculate_layout(len(products))
        canvas, background = await self._render_background(group, theme, layout, blobs)

        self.renderer.draw_title(
            canvas, group.name, title_font, styles.title_color, layout.title_center, styles.shadow_color
        )

        # Drawn in product order
        items = []
        for product, cell in zip(products, layout.cells):
            status = await self._render_item(canvas, cell, product.name, blobs.get(product.image_id),
                                             caption_font, theme)
            if status is ItemStatus.MISSING:
                logger.warning(f"Image for product {product.name} not found in store")
            items.append(ItemOutcome(product.id, product.name, cell, status))

        png = self.renderer.export(canvas)
        self._enter(group, CompositionState.DONE)
        logger.info(f"Frame for '{group.name}' complete: {layout.canvas_width}x{layout.canvas_height}")

        return CompositionResult(
            png=png,
            layout=layout,
            items=items,
            background=background,
            font_fallbacks=font_fallbacks,
        )

    async def _load_fonts(self, title: FontStyle, caption: FontStyle) -> Tuple[AnyFont, AnyFont, List[str]]:
        fallbacks = []

        async def load(style: FontStyle) -> AnyFont:
            try:
                return await asyncio.to_thread(self.renderer.fonts.load, style)
            except FontLoadError as e:
                logger.warning(f"Could not load font {font_string(style)}, using substitute: {e}")
                fallbacks.append(font_string(style))
                return self.renderer.fonts.substitute(style)

        title_font, caption_font = await asyncio.gather(load(title), load(caption))
        return title_font, caption_font, fallbacks

    async def _decode(self, data: bytes) -> Image.Image:
        return await asyncio.to_thread(decode_image, data)

    async def _render_background(
        self,
        group: Group,
        theme: Theme,
        layout: GridLayout,
        blobs: Dict[str, bytes],
    ) -> Tuple[Image.Image, BackgroundSource]:
        width, height = layout.size
        theme_color = theme.styles.background_color
        background = group.background

        if isinstance(background, ColorBackground):
            return self.renderer.create_canvas(width, height, background.value), BackgroundSource.COLOR

        if isinstance(background, ImageBackground):
            data = blobs.get(background.image_id)
            if data is None:
                logger.error("Background image not found in store, falling back to theme color")
            else:
                try:
                    image = await self._decode(data)
                except ImageDecodeError as e:
                    logger.error(f"Failed to load background image, falling back to theme color: {e}")
                else:
                    canvas = self.renderer.create_canvas(width, height, theme_color)
                    self.renderer.draw_background_image(canvas, image)
                    return canvas, BackgroundSource.IMAGE
            return self.renderer.create_canvas(width, height, theme_color), BackgroundSource.THEME_FALLBACK

        return self.renderer.create_canvas(width, height, theme_color), BackgroundSource.THEME

    async def _render_item(
        self,
        canvas: Image.Image,
        cell: CellSpec,
        name: str,
        data: Optional[bytes],
        caption_font: AnyFont,
        theme: Theme,
    ) -> ItemStatus:
        if data is None:
            self.renderer.draw_placeholder(canvas, cell, MISSING_LABEL)
            return ItemStatus.MISSING

        try:
            image = await self._decode(data)
        except ImageDecodeError as e:
            logger.error(f"Failed to load image for product: {name}: {e}")
            self.renderer.draw_placeholder(canvas, cell, DECODE_ERROR_LABEL)
            return ItemStatus.DECODE_ERROR

        styles = theme.styles
        self.renderer.draw_item(canvas, cell, image)
        self.renderer.draw_caption(canvas, cell, name, caption_font, styles.caption_color, styles.shadow_color)
        return ItemStatus.RENDERED
