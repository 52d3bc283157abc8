"""
Text-flow layout: greedy word wrap with page overflow.

Turns an ordered sequence of recognition results into physically paginated
lines for the text PDF. Pure and deterministic; the caller supplies the
width measurement function (font metrics) so the engine never touches a
renderer.

Coordinates follow PDF conventions: y is measured from the bottom of the
page, so the first line of a page sits at ``page_height - margin`` and
lines move downward by ``font_size * line_height_multiplier``.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

from .errors import ConfigurationError

MeasureWidth = Callable[[str, float], float]

MARKER = "marker"
TEXT = "text"
BLANK = "blank"


class _PageText(Protocol):
    page_index: int
    text: str


@dataclass(frozen=True)
class LayoutGeometry:
    """Page geometry and font metrics, all in points."""

    page_width: float
    page_height: float
    margin: float
    font_size: float
    line_height_multiplier: float

    def __post_init__(self) -> None:
        for name in ("page_width", "page_height", "margin", "font_size", "line_height_multiplier"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be > 0, got {value}")
        if self.page_width <= 2 * self.margin:
            raise ConfigurationError(
                f"page_width ({self.page_width}) must exceed twice the margin ({self.margin})"
            )
        if self.page_height <= 2 * self.margin:
            raise ConfigurationError(
                f"page_height ({self.page_height}) must exceed twice the margin ({self.margin})"
            )

    @property
    def available_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def line_height(self) -> float:
        return self.font_size * self.line_height_multiplier

    @property
    def top(self) -> float:
        return self.page_height - self.margin


@dataclass(frozen=True)
class LaidOutLine:
    """A positioned line. kind is one of 'marker', 'text', 'blank'."""

    text: str
    y: float
    kind: str = TEXT


@dataclass
class LaidOutPage:
    """One physical output page."""

    number: int  # 1-based
    lines: list[LaidOutLine] = field(default_factory=list)


@dataclass
class LaidOutDocument:
    """Ordered, append-only sequence of laid-out pages."""

    pages: list[LaidOutPage] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def line_count(self) -> int:
        return sum(len(page.lines) for page in self.pages)

    def text_lines(self) -> list[LaidOutLine]:
        """All wrapped text lines (no page markers or blank placeholders)."""
        return [line for page in self.pages for line in page.lines if line.kind == TEXT]


def page_marker(page_index: int) -> str:
    """Heading line inserted before each source page's text."""
    return f"— Page {page_index + 1} —"


def monospace_measure(char_width_ratio: float = 0.5) -> MeasureWidth:
    """Measurement function where every character is char_width_ratio * font_size wide."""

    def measure(text: str, font_size: float) -> float:
        return len(text) * font_size * char_width_ratio

    return measure


def wrap_line(
    line: str,
    measure_width: MeasureWidth,
    font_size: float,
    max_width: float,
) -> list[str]:
    """Greedily pack the words of one raw line into wrapped lines.

    A word wider than max_width is placed on a line of its own rather than
    dropped, so the number of words is always preserved.
    """
    wrapped = []
    current = ""

    for word in line.split():
        candidate = f"{current} {word}" if current else word
        if measure_width(candidate, font_size) <= max_width:
            current = candidate
            continue
        if current:
            wrapped.append(current)
        current = word

    if current:
        wrapped.append(current)

    return wrapped


class _Flow:
    """Vertical cursor that opens a new page when a line would cross the bottom margin."""

    def __init__(self, geometry: LayoutGeometry) -> None:
        self.geometry = geometry
        self.document = LaidOutDocument()
        self.page: LaidOutPage | None = None
        self.y = geometry.top

    def place(self, text: str, kind: str = TEXT) -> None:
        if self.page is None or self.y < self.geometry.margin:
            self._new_page()
        self.page.lines.append(LaidOutLine(text=text, y=self.y, kind=kind))
        self.y -= self.geometry.line_height

    def skip(self) -> None:
        """Consume one line of vertical space without placing anything."""
        if self.page is not None:
            self.y -= self.geometry.line_height

    def _new_page(self) -> None:
        self.page = LaidOutPage(number=len(self.document.pages) + 1)
        self.document.pages.append(self.page)
        self.y = self.geometry.top


def layout(
    results: Iterable[_PageText],
    geometry: LayoutGeometry,
    measure_width: MeasureWidth,
    skip_empty: bool = True,
) -> LaidOutDocument:
    """Lay out recognized pages into wrapped, paginated lines.

    Each surviving result contributes a page marker line, a blank gap, its
    wrapped text, and a trailing blank gap. Blank source lines consume
    vertical space but produce no line.

    Args:
        results: Recognition results in page order
        geometry: Page geometry and font metrics
        measure_width: (text, font_size) -> rendered width
        skip_empty: Omit results whose trimmed text is empty

    Returns:
        LaidOutDocument (zero pages for empty input)
    """
    flow = _Flow(geometry)
    max_width = geometry.available_width

    for result in results:
        text = (result.text or "").strip()
        if not text and skip_empty:
            continue

        flow.place(page_marker(result.page_index), kind=MARKER)
        flow.skip()

        if not text:
            flow.place("", kind=BLANK)
        else:
            for raw_line in text.split("\n"):
                if not raw_line.strip():
                    flow.skip()
                    continue
                for wrapped in wrap_line(raw_line, measure_width, geometry.font_size, max_width):
                    flow.place(wrapped)

        flow.skip()

    return flow.document
