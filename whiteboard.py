"""
Local whiteboard for a session room.

Strokes live only in the owning member's room; nothing is shared with the
other participant.
"""
import re
from typing import List, Optional, Tuple, Union
from xml.sax.saxutils import quoteattr

from pydantic import BaseModel, Field

from errors import ValidationFailed

TOOLS = ("pen", "eraser")
MIN_SIZE = 1
MAX_SIZE = 50
COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")


class Stroke(BaseModel):
    tool: str
    color: str
    size: int
    points: List[Tuple[float, float]] = Field(default_factory=list)


class PlacedImage(BaseModel):
    data_url: str
    x: float
    y: float
    width: float
    height: float


class Whiteboard:
    def __init__(self, width: int = 1200, height: int = 800, background: str = "#ffffff"):
        self.width = width
        self.height = height
        self.background = background
        self.tool = "pen"
        self.color = "#000000"
        self.size = 3
        self.items: List[Union[Stroke, PlacedImage]] = []
        self._current: Optional[Stroke] = None

    @property
    def drawing(self) -> bool:
        return self._current is not None

    def set_tool(self, tool: str):
        if tool not in TOOLS:
            raise ValidationFailed(f"Unknown tool: {tool}")
        self.tool = tool

    def set_color(self, color: str):
        if not COLOR_RE.match(color):
            raise ValidationFailed(f"Invalid colour: {color}")
        self.color = color

    def set_size(self, size: int):
        self.size = min(max(int(size), MIN_SIZE), MAX_SIZE)

    def _clamp(self, x: float, y: float) -> Tuple[float, float]:
        return min(max(x, 0), self.width), min(max(y, 0), self.height)

    def pointer_down(self, x: float, y: float):
        # the eraser paints with the background colour
        color = self.background if self.tool == "eraser" else self.color
        self._current = Stroke(tool=self.tool, color=color, size=self.size, points=[self._clamp(x, y)])

    def pointer_move(self, x: float, y: float):
        if self._current is not None:
            self._current.points.append(self._clamp(x, y))

    def pointer_up(self) -> Optional[Stroke]:
        stroke, self._current = self._current, None
        if stroke is not None:
            self.items.append(stroke)
        return stroke

    def insert_image(
        self,
        data_url: str,
        x: float = 0,
        y: float = 0,
        width: Optional[float] = None,
        height: Optional[float] = None,
    ) -> PlacedImage:
        if not data_url.startswith("data:image/"):
            raise ValidationFailed("Only images can be placed on the whiteboard")
        image = PlacedImage(
            data_url=data_url, x=x, y=y, width=width or self.width, height=height or self.height
        )
        self.items.append(image)
        return image

    def clear(self):
        self.items = []
        self._current = None

    def export_svg(self) -> str:
        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{self.width}" height="{self.height}" '
            f'viewBox="0 0 {self.width} {self.height}">',
            f'<rect width="100%" height="100%" fill={quoteattr(self.background)}/>',
        ]
        for item in self.items:
            if isinstance(item, PlacedImage):
                parts.append(
                    f'<image href={quoteattr(item.data_url)} x="{item.x:g}" y="{item.y:g}" '
                    f'width="{item.width:g}" height="{item.height:g}"/>'
                )
            else:
                points = " ".join(f"{x:g},{y:g}" for x, y in item.points)
                parts.append(
                    f'<polyline points="{points}" fill="none" stroke={quoteattr(item.color)} '
                    f'stroke-width="{item.size}" stroke-linecap="round" stroke-linejoin="round"/>'
                )
        parts.append("</svg>")
        return "\n".join(parts)
