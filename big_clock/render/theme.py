"""
Theme - Key canvas geometry, colors, and font lookup
"""
import os
from typing import Dict, List, Optional, Tuple


class Theme:
    """
    Visual constants for a Stream Deck key image.
    """

    # Canvas
    CANVAS_SIZE = 144             # Stream Deck key image, square
    CORNER_RADIUS = 8             # Rounded background corners

    # Two-character glyphs are drawn smaller to balance single-digit keys
    MULTI_CHAR_SCALE = 0.75

    # Baseline offset used by the SVG encoding, as a fraction of font size
    SVG_BASELINE_SHIFT = 0.35

    # Color
    FALLBACK_FILL = 'red'         # Drawn when the glyph image cannot be built

    FONT_WEIGHT_BOLD = 'bold'

    # Bold TrueType files tried for a requested family, most specific first
    FONT_DIRS = [
        '/usr/share/fonts/truetype',
        '/usr/share/fonts',
        '/Library/Fonts',
        'C:\\Windows\\Fonts',
    ]

    FONT_FALLBACKS = [
        '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf',
        '/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf',
        '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
    ]

    # Families with a known metric-compatible substitute on Linux
    FONT_ALIASES: Dict[str, List[str]] = {
        'arial': ['arialbd.ttf', 'Arial Bold.ttf', 'liberation/LiberationSans-Bold.ttf'],
        'helvetica': ['Helvetica.ttc', 'liberation/LiberationSans-Bold.ttf'],
        'times new roman': ['timesbd.ttf', 'liberation/LiberationSerif-Bold.ttf'],
        'courier new': ['courbd.ttf', 'liberation/LiberationMono-Bold.ttf'],
        'verdana': ['verdanab.ttf', 'dejavu/DejaVuSans-Bold.ttf'],
    }

    @staticmethod
    def find_font_file(family: str) -> Optional[str]:
        """
        Find a TrueType file for a font family.

        Args:
            family: Font family name from the cell settings

        Returns:
            Path to a font file, or None if nothing usable is installed
        """
        key = (family or '').strip().lower()
        candidates = list(Theme.FONT_ALIASES.get(key, []))
        if key:
            compact = key.replace(' ', '')
            candidates += [f"{compact}bd.ttf", f"{compact}-Bold.ttf", f"{compact}.ttf"]

        for directory in Theme.FONT_DIRS:
            for name in candidates:
                path = os.path.join(directory, name)
                if os.path.exists(path):
                    return path

        for path in Theme.FONT_FALLBACKS:
            if os.path.exists(path):
                return path
        return None

    @staticmethod
    def get_canvas_box() -> Tuple[int, int, int, int]:
        """Bounding box of the background rectangle"""
        return (0, 0, Theme.CANVAS_SIZE - 1, Theme.CANVAS_SIZE - 1)
