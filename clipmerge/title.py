from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import List, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

log = logging.getLogger(__name__)

ROW_SPACING = 1.5  # rows 0 and 2 sit 1.5 row-heights above/below the centre

_FAMILY_ALIASES = {
    "sans-serif": ["DejaVuSans.ttf", "Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf"],
    "serif": ["DejaVuSerif.ttf", "Times New Roman.ttf", "times.ttf", "LiberationSerif-Regular.ttf"],
    "monospace": ["DejaVuSansMono.ttf", "Courier New.ttf", "cour.ttf", "LiberationMono-Regular.ttf"],
}


@lru_cache(maxsize=8)
def load_font(family: str, size: float) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    candidates = [family, *_FAMILY_ALIASES.get(family.lower(), [])]
    if not family.lower().endswith((".ttf", ".otf", ".ttc")):
        candidates.append(f"{family}.ttf")
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    log.warning("Font %r not found; using Pillow's default font", family)
    return ImageFont.load_default(size=size)


def row_centers(width: int, height: int, row_heights: Sequence[float]) -> List[Tuple[float, float]]:
    """Centre point of each of the three title rows."""
    cx, cy = width / 2, height / 2
    offsets = (-ROW_SPACING, 0.0, ROW_SPACING)
    return [(cx, cy + offsets[r] * row_heights[r]) for r in range(len(offsets))]


class TitleRenderer:
    def __init__(
        self,
        font_family: str,
        font_size: float,
        foreground: Tuple[int, ...],
        background: Tuple[int, ...],
        date_format: str = "%Y-%m-%d",
        time_format: str = "%H:%M:%S",
    ):
        self.font = load_font(font_family, font_size)
        self.foreground = foreground
        self.background = background
        self.date_format = date_format
        self.time_format = time_format

    @classmethod
    def from_config(cls, title_cfg) -> "TitleRenderer":
        return cls(
            font_family=title_cfg.font_family,
            font_size=title_cfg.font_size,
            foreground=title_cfg.foreground_rgb,
            background=title_cfg.background_rgb,
            date_format=title_cfg.date_format,
            time_format=title_cfg.time_format,
        )

    def title_lines(self, camera: str, when: datetime) -> List[str]:
        return [camera, when.strftime(self.date_format), when.strftime(self.time_format)]

    def render(self, width: int, height: int, lines: Sequence[str]) -> Image.Image:
        if len(lines) != 3:
            raise ValueError(f"title needs exactly 3 rows, got {len(lines)}")
        image = Image.new("RGB", (width, height), self.background)
        draw = ImageDraw.Draw(image)

        boxes = [draw.textbbox((0, 0), text, font=self.font) for text in lines]
        heights = [b[3] - b[1] for b in boxes]
        for text, box, (cx, cy) in zip(lines, boxes, row_centers(width, height, heights)):
            if not text:
                continue
            # shift so the ink box, not the origin, lands on the centre point
            x = cx - (box[0] + box[2]) / 2
            y = cy - (box[1] + box[3]) / 2
            draw.text((x, y), text, font=self.font, fill=self.foreground)
        return image

    def write(self, path: Path, camera: str, when: datetime, width: int, height: int) -> Path:
        image = self.render(width, height, self.title_lines(camera, when))
        image.save(path, format="PNG")
        return path
