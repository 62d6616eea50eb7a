"""
Render Dispatcher - Draws a glyph onto a key image and pushes it to the host
"""
import base64
import io
from typing import Any, Dict, Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

from PIL import Image, ImageDraw, ImageFont

from ..core.cell_settings import CellSettings
from ..core.logging_service import LoggingService, get_logger
from ..host.interfaces import DisplayHandle
from .theme import Theme

RENDER_FORMATS = ('png', 'svg')


def font_size_for(glyph: str, base_size: float) -> float:
    """
    Font size for a glyph.

    Args:
        glyph: Text to draw
        base_size: Font size from the cell settings

    Returns:
        base_size for one character, 75% of it for two characters
    """
    if len(glyph) == 2:
        return base_size * Theme.MULTI_CHAR_SCALE
    return base_size


class RenderDispatcher:
    """
    Builds key images and sends them to display handles.
    """

    def __init__(self, image_format: str = 'png', logger: Optional[LoggingService] = None):
        """
        Initialize render dispatcher.

        Args:
            image_format: 'png' (Pillow raster) or 'svg' (vector document)
            logger: Logging service
        """
        if image_format not in RENDER_FORMATS:
            raise ValueError(f"render format must be one of: {', '.join(RENDER_FORMATS)}")
        self._format = image_format
        self._logger = logger or get_logger()

        # Simple font cache for dynamic sizing ((family, size) -> font)
        self._font_cache: Dict[Tuple[str, int], Any] = {}

    async def render(self, handle: DisplayHandle, glyph: str, settings: CellSettings) -> None:
        """
        Draw a glyph and push it to a key, clearing the key title.

        Push failures propagate to the caller.
        """
        image = self.build_image(glyph, settings)
        await handle.set_image(image)
        # A title would be drawn over the glyph
        await handle.set_title("")

    def build_image(self, glyph: str, settings: CellSettings) -> str:
        """
        Build the key image as a data URL.

        Falls back to a plain colored square if the image cannot be built.
        """
        try:
            if self._format == 'svg':
                return self._build_svg(glyph, settings)
            return self._build_png(glyph, settings)
        except Exception as e:
            self._logger.error(f"Error creating key image for {glyph!r}: {e}")
            return self.fallback_image()

    def fallback_image(self) -> str:
        """Plain rounded square in the fallback color"""
        if self._format == 'svg':
            size = Theme.CANVAS_SIZE
            svg = (
                f'<svg width="{size}" height="{size}" xmlns="http://www.w3.org/2000/svg">'
                f'<rect width="100%" height="100%" fill="{Theme.FALLBACK_FILL}" rx="{Theme.CORNER_RADIUS}"/>'
                f'</svg>'
            )
            return _data_url('image/svg+xml', svg.encode('utf-8'))

        image = Image.new('RGBA', (Theme.CANVAS_SIZE, Theme.CANVAS_SIZE), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        draw.rounded_rectangle(Theme.get_canvas_box(), radius=Theme.CORNER_RADIUS, fill=Theme.FALLBACK_FILL)
        return _data_url('image/png', _png_bytes(image))

    def _build_png(self, glyph: str, settings: CellSettings) -> str:
        size = Theme.CANVAS_SIZE
        font_size = max(1, int(round(font_size_for(glyph, settings.font_size))))

        image = Image.new('RGBA', (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        draw.rounded_rectangle(
            Theme.get_canvas_box(),
            radius=Theme.CORNER_RADIUS,
            fill=settings.background_color
        )

        font = self._get_font(settings.font_family, font_size)
        draw.text(
            (size / 2, size / 2),
            glyph,
            font=font,
            fill=settings.text_color,
            anchor='mm'
        )
        return _data_url('image/png', _png_bytes(image))

    def _build_svg(self, glyph: str, settings: CellSettings) -> str:
        size = Theme.CANVAS_SIZE
        font_size = font_size_for(glyph, settings.font_size)
        center_x = size / 2
        # Approximate vertical centering from typical font metrics
        center_y = size / 2 + font_size * Theme.SVG_BASELINE_SHIFT

        svg = (
            f'<svg width="{size}" height="{size}" xmlns="http://www.w3.org/2000/svg">'
            f'<rect width="{size}" height="{size}" fill={quoteattr(settings.background_color)}'
            f' rx="{Theme.CORNER_RADIUS}"/>'
            f'<text x="{_fmt(center_x)}" y="{_fmt(center_y)}"'
            f' font-family={quoteattr(settings.font_family)}'
            f' font-size="{_fmt(font_size)}px"'
            f' font-weight="{Theme.FONT_WEIGHT_BOLD}"'
            f' fill={quoteattr(settings.text_color)}'
            f' text-anchor="middle" dominant-baseline="auto">{escape(glyph)}</text>'
            f'</svg>'
        )
        return _data_url('image/svg+xml', svg.encode('utf-8'))

    def _get_font(self, family: str, size: int):
        """Load a font, falling back to Pillow's built-in scalable font"""
        key = (family, size)
        font = self._font_cache.get(key)
        if font is not None:
            return font

        font_file = Theme.find_font_file(family)
        if font_file:
            font = ImageFont.truetype(font_file, size)
        else:
            self._logger.debug(f"No font file for '{family}', using default PIL font")
            font = ImageFont.load_default(size=size)

        self._font_cache[key] = font
        return font

    @property
    def image_format(self) -> str:
        return self._format


def _png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def _data_url(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _fmt(value: float) -> str:
    """Render a number without a trailing .0"""
    return f"{value:g}"
