"""
FrameRenderer - Pillow-based drawing for frame composition.

Handles:
1. Font lookup with substitute fallback
2. Decoding stored image bytes
3. Canvas background (flat color or stretched image)
4. Title and caption text with a soft shadow
5. Item images and placeholder tiles
6. Exporting the final image
"""

import base64
import io
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from .colors import parse_color
from .errors import FontLoadError, ImageDecodeError
from .layout import CellSpec
from .models import FontStyle

logger = logging.getLogger(__name__)

AnyFont = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

PLACEHOLDER_FILL = "#334155"
PLACEHOLDER_TEXT = "#94a3b8"
PLACEHOLDER_FONT = FontStyle(family="sans-serif", size=32)
MISSING_LABEL = "Image Missing"
DECODE_ERROR_LABEL = "Image Error"

TITLE_SHADOW_BLUR = 10
CAPTION_SHADOW_BLUR = 5

# Tried in order when a theme font is not installed
SUBSTITUTE_FONTS = {
    (False, False): ["DejaVuSans.ttf", "Helvetica.ttc", "arial.ttf"],
    (True, False): ["DejaVuSans-Bold.ttf", "Helvetica.ttc", "arialbd.ttf"],
    (False, True): ["DejaVuSans-Oblique.ttf", "Helvetica.ttc", "ariali.ttf"],
    (True, True): ["DejaVuSans-BoldOblique.ttf", "Helvetica.ttc", "arialbi.ttf"],
}


def font_string(font: FontStyle) -> str:
    """CSS font shorthand for display and logging, e.g. 'bold 72px "Roboto"'."""
    parts = []
    if font.style == "italic":
        parts.append("italic")
    if font.weight == "bold":
        parts.append("bold")
    parts.append(f"{font.size}px")
    parts.append(f'"{font.family}"')
    return " ".join(parts)


def _font_key(font: FontStyle) -> Tuple[str, int, str, str]:
    return (font.family, font.size, font.weight, font.style)


class FontLoader:
    """
    Finds font files for FontStyle records.

    Looks in the configured font directories first, then lets Pillow search
    the system font paths by file name.
    """

    def __init__(self, font_dirs: Iterable[Union[str, Path]] = ()):
        self.font_dirs = [Path(d) for d in font_dirs]
        self._cache: Dict[Tuple[str, int, str, str], AnyFont] = {}
        self._substitutes: Dict[Tuple[str, int, str, str], AnyFont] = {}

    def candidates(self, font: FontStyle) -> List[str]:
        base = font.family.replace(" ", "")
        bold = font.weight == "bold"
        italic = font.style == "italic"

        if bold and italic:
            suffixes = ["-BoldItalic", "BI", "-Bold"]
        elif bold:
            suffixes = ["-Bold", "bd", "Bold"]
        elif italic:
            suffixes = ["-Italic", "i", "Italic"]
        else:
            suffixes = ["-Regular", "", "Regular"]

        return [f"{base}{suffix}{ext}" for suffix in suffixes for ext in (".ttf", ".otf")]

    def _open(self, name: str, size: int) -> ImageFont.FreeTypeFont:
        for directory in self.font_dirs:
            path = directory / name
            if path.exists():
                return ImageFont.truetype(str(path), size)
        return ImageFont.truetype(name, size)

    def load(self, font: FontStyle) -> AnyFont:
        """
        Load the font file for a style.

        Raises:
            FontLoadError: if no candidate file can be opened
        """
        key = _font_key(font)
        if key in self._cache:
            return self._cache[key]

        names = self.candidates(font)
        for name in names:
            try:
                loaded = self._open(name, font.size)
            except OSError:
                continue
            self._cache[key] = loaded
            return loaded

        raise FontLoadError(
            f"No font file found for {font_string(font)}",
            details={"font": font_string(font), "tried": names},
        )

    def substitute(self, font: FontStyle) -> AnyFont:
        """Closest generic font for a style. Never fails."""
        key = _font_key(font)
        if key in self._substitutes:
            return self._substitutes[key]

        substitute = None
        for name in SUBSTITUTE_FONTS[(font.weight == "bold", font.style == "italic")]:
            try:
                substitute = self._open(name, font.size)
                break
            except OSError:
                continue
        if substitute is None:
            substitute = ImageFont.load_default(size=font.size)
        self._substitutes[key] = substitute
        return substitute

    def load_or_substitute(self, font: FontStyle) -> Tuple[AnyFont, bool]:
        """
        Returns:
            Tuple of (font, substituted)
        """
        key = _font_key(font)
        if key in self._substitutes:
            return self._substitutes[key], True
        try:
            return self.load(font), False
        except FontLoadError:
            return self.substitute(font), True


def decode_image(data: bytes) -> Image.Image:
    """
    Decode stored bytes into an RGBA image.

    Raises:
        ImageDecodeError: if the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}", details={"size": len(data)}) from e


class FrameRenderer:
    """
    Draws frames using Pillow.

    All drawing happens on an RGBA canvas; callers control order, so later
    calls paint over earlier ones.
    """

    def __init__(self, fonts: Optional[FontLoader] = None):
        self.fonts = fonts or FontLoader()

    def create_canvas(self, width: int, height: int, color: str) -> Image.Image:
        """New canvas flat-filled with color."""
        return Image.new("RGBA", (width, height), parse_color(color))

    def draw_background_image(self, canvas: Image.Image, background: Image.Image) -> None:
        """Stretch background over the whole canvas."""
        stretched = background.convert("RGBA").resize(canvas.size, Image.Resampling.LANCZOS)
        canvas.alpha_composite(stretched)

    def _text_origin(
        self,
        draw: ImageDraw.ImageDraw,
        text: str,
        font: AnyFont,
        anchor: Tuple[float, float],
        vertical: str,
    ) -> Tuple[float, float]:
        # Horizontally centered on anchor; vertically centered ("middle") or hanging ("top")
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        x = anchor[0] - (left + right) / 2
        if vertical == "middle":
            y = anchor[1] - (top + bottom) / 2
        else:
            y = anchor[1] - top
        return x, y

    def draw_text(
        self,
        canvas: Image.Image,
        text: str,
        font: AnyFont,
        color: str,
        anchor: Tuple[float, float],
        vertical: str = "middle",
        shadow_color: Optional[str] = None,
        shadow_blur: int = 0,
    ) -> None:
        """
        Draw text centered on anchor, with an optional blurred shadow beneath.

        Args:
            canvas: RGBA canvas to draw on
            text: Text to draw
            font: Loaded font
            color: Text color
            anchor: (x, y) reference point
            vertical: "middle" centers on anchor y, "top" hangs from it
            shadow_color: Shadow color; no shadow if None or fully transparent
            shadow_blur: Shadow blur size in pixels
        """
        if not text:
            return

        draw = ImageDraw.Draw(canvas)
        origin = self._text_origin(draw, text, font, anchor, vertical)

        if shadow_color and shadow_blur > 0:
            shadow = parse_color(shadow_color)
            if shadow[3] > 0:
                self._draw_shadow(canvas, draw, text, font, origin, shadow, shadow_blur)

        draw.text(origin, text, font=font, fill=parse_color(color))

    def _draw_shadow(self, canvas, draw, text, font, origin, shadow, blur) -> None:
        left, top, right, bottom = draw.textbbox(origin, text, font=font)
        margin = blur * 2
        box = (
            int(left) - margin,
            int(top) - margin,
            int(right) + margin + 1,
            int(bottom) + margin + 1,
        )

        layer = Image.new("RGBA", (box[2] - box[0], box[3] - box[1]), (0, 0, 0, 0))
        ImageDraw.Draw(layer).text((origin[0] - box[0], origin[1] - box[1]), text, font=font, fill=shadow)
        layer = layer.filter(ImageFilter.GaussianBlur(blur / 2))

        # crop() pads out-of-bounds areas, paste() clips them again
        region = canvas.crop(box)
        region.alpha_composite(layer)
        canvas.paste(region, box[:2])

    def draw_title(self, canvas, text, font, color, center, shadow_color) -> None:
        self.draw_text(canvas, text, font, color, center, "middle", shadow_color, TITLE_SHADOW_BLUR)

    def draw_item(self, canvas: Image.Image, cell: CellSpec, image: Image.Image) -> None:
        """Draw image stretched to fill the cell."""
        resized = image.convert("RGBA").resize((cell.width, cell.height), Image.Resampling.LANCZOS)
        canvas.alpha_composite(resized, dest=(cell.x, cell.y))

    def draw_caption(self, canvas, cell: CellSpec, text, font, color, shadow_color) -> None:
        self.draw_text(canvas, text, font, color, cell.caption_anchor, "top", shadow_color, CAPTION_SHADOW_BLUR)

    def draw_placeholder(self, canvas: Image.Image, cell: CellSpec, label: str) -> None:
        """Solid tile with a centered label, drawn where an item image could not be used."""
        draw = ImageDraw.Draw(canvas)
        draw.rectangle(
            [(cell.x, cell.y), (cell.x + cell.width - 1, cell.y + cell.height - 1)],
            fill=parse_color(PLACEHOLDER_FILL),
        )
        font, _ = self.fonts.load_or_substitute(PLACEHOLDER_FONT)
        self.draw_text(canvas, label, font, PLACEHOLDER_TEXT, cell.center, "middle")

    def export(self, image: Image.Image, format: str = "PNG") -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format=format)
        return buffer.getvalue()


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
