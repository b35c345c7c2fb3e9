#!/usr/bin/env python3
"""lsystem_fractals.py

An L-system fractal generator: a caching production engine plus a turtle
interpreter, rendering to SVG.

Key features:
- JSON-based input configuration with a closed alphabet (forward letters,
  placeholder variables and the fixed control symbols + - [ ]).
- Production engine that memoizes every expanded level, so stepping through
  depths never recomputes a level twice.
- Streaming expansion of deep levels without materializing them.
- One turtle walk yielding segments tagged with path distance and the
  bounding box used to fit the viewport.
- Branching via push/pop, with mismatched nesting reported as an error.

Run:
  python lsystem_fractals.py render config.json output.svg --depth 4
  python lsystem_fractals.py frames config.json frames/ --max-depth 6
  python lsystem_fractals.py validate config.json
  python lsystem_fractals.py --help
"""

from __future__ import annotations

import argparse
import enum
import itertools
import json
import logging
import math
import os
import sys
import threading
from collections.abc import Generator, Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union, cast

logger = logging.getLogger("lsystem_fractals")

Point = tuple[float, float]


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


class NestingError(ValueError):
    """A pop symbol was reached with no open push to restore."""


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_bool(x: Any, path: str) -> bool:
    _require(isinstance(x, bool), f"{path} must be a boolean")
    return cast(bool, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


# -------------------------
# Symbol model
# -------------------------


@dataclass(frozen=True)
class Var:
    """Placeholder letter: rewritten by productions, never drawn."""

    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"symbol index must be >= 0, got {self.index}")


@dataclass(frozen=True)
class Fwd:
    """Letter that draws one forward segment when interpreted."""

    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"symbol index must be >= 0, got {self.index}")


class Control(enum.Enum):
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"
    PUSH = "push"
    POP = "pop"

    def __repr__(self) -> str:
        return f"Control.{self.name}"


TURN_LEFT = Control.TURN_LEFT
TURN_RIGHT = Control.TURN_RIGHT
PUSH = Control.PUSH
POP = Control.POP

Symbol = Union[Var, Fwd, Control]


# -------------------------
# Production engine
# -------------------------


class LSystem:
    """Axiom plus context-free productions, with every expanded level cached.

    Level 0 is the axiom. ``get(n)`` computes the levels missing between the
    deepest cached one and ``n``, in order, and keeps them for the lifetime of
    the instance. The cache only grows; it never has gaps.
    """

    def __init__(
        self,
        axiom: Iterable[Symbol],
        productions: Mapping[Symbol, Iterable[Symbol]],
        angle_radians: float,
    ) -> None:
        self._iterations: list[tuple[Symbol, ...]] = [tuple(axiom)]
        self._productions: dict[Symbol, tuple[Symbol, ...]] = {
            sym: tuple(body) for sym, body in productions.items()
        }
        self._angle_radians = float(angle_radians)
        self._lock = threading.Lock()
        # Levels computed since construction; a cache hit leaves it unchanged.
        self.computed_levels = 0

    @property
    def axiom(self) -> tuple[Symbol, ...]:
        return self._iterations[0]

    @property
    def productions(self) -> Mapping[Symbol, tuple[Symbol, ...]]:
        return MappingProxyType(self._productions)

    @property
    def angle_radians(self) -> float:
        return self._angle_radians

    @property
    def cached_depth(self) -> int:
        """Deepest iteration level currently held in the cache."""
        return len(self._iterations) - 1

    def get(self, index: int) -> tuple[Symbol, ...]:
        """Return the symbol sequence at iteration ``index`` (0-based).

        The returned tuple is the cached level itself, not a copy.
        """
        if index < 0:
            raise ValueError(f"iteration index must be >= 0, got {index}")
        if index < len(self._iterations):
            return self._iterations[index]

        with self._lock:
            while len(self._iterations) <= index:
                nxt = self._compute_iteration(self._iterations[-1])
                self._iterations.append(nxt)
                self.computed_levels += 1
                logger.debug(
                    "computed level %d: %d symbols", len(self._iterations) - 1, len(nxt)
                )
        return self._iterations[index]

    def iter_level(self, index: int) -> Generator[Symbol, None, None]:
        """Yield level ``index`` symbol by symbol without building it.

        Expansion starts from the deepest cached level not beyond ``index``
        and uses an explicit stack of (sequence, position, depth) frames. The
        cache is left untouched.
        """
        if index < 0:
            raise ValueError(f"iteration index must be >= 0, got {index}")

        base = min(index, self.cached_depth)
        remaining = index - base
        stack: list[tuple[Sequence[Symbol], int, int]] = [
            (self._iterations[base], 0, 0)
        ]

        while stack:
            seq, i, d = stack.pop()
            if i >= len(seq):
                continue

            sym = seq[i]
            # Continuation goes below the replacement so the replacement is
            # fully traversed first, keeping left-to-right order.
            stack.append((seq, i + 1, d))

            body = self._productions.get(sym) if d < remaining else None
            if body is None:
                yield sym
            else:
                stack.append((body, 0, d + 1))

    def _compute_iteration(self, state: Sequence[Symbol]) -> tuple[Symbol, ...]:
        result: list[Symbol] = []
        for sym in state:
            body = self._productions.get(sym)
            if body is None:
                result.append(sym)
            else:
                result.extend(body)
        return tuple(result)


# -------------------------
# Turtle interpreter
# -------------------------


@dataclass(frozen=True)
class TurtleState:
    x: float
    y: float
    heading: float


@dataclass(frozen=True)
class Vertex:
    x: float
    y: float
    dist: float


@dataclass(frozen=True)
class Bounds:
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def size(self) -> float:
        return max(self.width, self.height)

    @property
    def center(self) -> Point:
        return ((self.x_min + self.x_max) / 2, (self.y_min + self.y_max) / 2)


@dataclass(frozen=True)
class TurtleRender:
    """Everything one turtle walk produces.

    ``vertices`` holds two entries per forward move (start, end), each tagged
    with the path distance travelled when the turtle was there.
    """

    vertices: tuple[Vertex, ...]
    path_distance: float
    bounds: Bounds
    final: TurtleState

    @property
    def segment_count(self) -> int:
        return len(self.vertices) // 2

    def segments(self) -> Generator[tuple[Vertex, Vertex], None, None]:
        it = iter(self.vertices)
        yield from zip(it, it)


def render_lsystem(
    symbols: Iterable[Symbol],
    angle_radians: float,
    step_length: float = 1.0,
    *,
    heading: float = 0.0,
    mirror: bool = False,
) -> TurtleRender:
    """Walk ``symbols`` with a turtle starting at the origin.

    TURN_LEFT subtracts ``angle_radians`` from the heading and TURN_RIGHT adds
    it; ``mirror`` swaps the two. Raises NestingError on a POP with no open
    PUSH.
    """
    if not step_length > 0:
        raise ValueError(f"step_length must be > 0, got {step_length}")

    turn = -angle_radians if mirror else angle_radians

    x = y = 0.0
    h = heading
    t = 0.0
    x_min = x_max = y_min = y_max = 0.0

    stack: list[TurtleState] = []
    verts: list[Vertex] = []

    for pos, sym in enumerate(symbols):
        if isinstance(sym, Fwd):
            verts.append(Vertex(x, y, t))

            x += step_length * math.cos(h)
            y += step_length * math.sin(h)
            t += step_length

            verts.append(Vertex(x, y, t))

            if x < x_min:
                x_min = x
            if x > x_max:
                x_max = x
            if y < y_min:
                y_min = y
            if y > y_max:
                y_max = y
        elif isinstance(sym, Var):
            continue
        elif sym is Control.TURN_LEFT:
            h -= turn
        elif sym is Control.TURN_RIGHT:
            h += turn
        elif sym is Control.PUSH:
            stack.append(TurtleState(x, y, h))
        elif sym is Control.POP:
            if not stack:
                raise NestingError(
                    f"mismatched nesting: pop at symbol {pos} has no open push"
                )
            st = stack.pop()
            x, y, h = st.x, st.y, st.heading
        else:
            raise TypeError(f"not an L-system symbol: {sym!r}")

    if stack:
        logger.debug("%d push(es) still open at end of sequence", len(stack))

    return TurtleRender(
        vertices=tuple(verts),
        path_distance=t,
        bounds=Bounds(x_min, y_min, x_max, y_max),
        final=TurtleState(x, y, h),
    )


def fit_bounds(
    symbols: Iterable[Symbol],
    angle_radians: float,
    step_length: float = 1.0,
    *,
    heading: float = 0.0,
    mirror: bool = False,
) -> Bounds:
    """Bounding box of the traced path, for fitting a viewport before drawing."""
    return render_lsystem(
        symbols, angle_radians, step_length, heading=heading, mirror=mirror
    ).bounds


# -------------------------
# Config model
# -------------------------

CONTROL_CHARS: dict[str, Control] = {
    "+": Control.TURN_LEFT,
    "-": Control.TURN_RIGHT,
    "[": Control.PUSH,
    "]": Control.POP,
}


@dataclass(frozen=True)
class SvgStyle:
    stroke: str = "#000"
    stroke_width: float = 1.0
    fill: str = "none"
    stroke_linecap: str = "round"
    stroke_linejoin: str = "round"


@dataclass(frozen=True)
class SvgOptions:
    margin: float = 10.0
    precision: int = 3
    flip_y: bool = True
    width: float | None = None
    height: float | None = None
    style: SvgStyle = SvgStyle()
    background: str | None = None
    # (start, end) colors interpolated along the path distance
    gradient: tuple[str, str] | None = None


@dataclass(frozen=True)
class FractalConfig:
    name: str
    forward_letters: str
    variable_letters: str
    axiom: str
    productions: dict[str, str]
    turn_angle_degrees: float

    depth: int
    step: float
    heading_degrees: float
    mirror: bool

    svg: SvgOptions


# -------------------------
# Alphabet encoding
# -------------------------


def build_alphabet(forward_letters: str, variable_letters: str) -> dict[str, Symbol]:
    """Map each declared character to its symbol, control characters included."""
    alphabet: dict[str, Symbol] = dict(CONTROL_CHARS)
    for i, ch in enumerate(forward_letters):
        _require(ch not in alphabet, f"letter {ch!r} is declared more than once")
        alphabet[ch] = Fwd(i)
    for i, ch in enumerate(variable_letters):
        _require(ch not in alphabet, f"letter {ch!r} is declared more than once")
        alphabet[ch] = Var(i)
    return alphabet


def encode(text: str, alphabet: Mapping[str, Symbol], where: str) -> tuple[Symbol, ...]:
    out: list[Symbol] = []
    for pos, ch in enumerate(text):
        sym = alphabet.get(ch)
        if sym is None:
            raise ConfigError(f"unknown symbol {ch!r} at position {pos} in {where}")
        out.append(sym)
    return tuple(out)


def decode(symbols: Iterable[Symbol], alphabet: Mapping[str, Symbol]) -> str:
    reverse = {sym: ch for ch, sym in alphabet.items()}
    return "".join(reverse[sym] for sym in symbols)


def lsystem_from_strs(
    forward_letters: str,
    variable_letters: str,
    axiom: str,
    productions: Mapping[str, str],
    angle_degrees: float,
) -> LSystem:
    """Build an engine from the character-level description.

    Every character is checked before the engine is created, so a bad
    description never yields a partially built LSystem.
    """
    alphabet = build_alphabet(forward_letters, variable_letters)
    axiom_syms = encode(axiom, alphabet, "axiom")

    prods: dict[Symbol, tuple[Symbol, ...]] = {}
    for ch, body in productions.items():
        key = alphabet.get(ch)
        _require(key is not None, f"unknown symbol {ch!r} used as a production key")
        _require(
            not isinstance(key, Control),
            f"control symbol {ch!r} cannot have a production",
        )
        prods[cast(Symbol, key)] = encode(body, alphabet, f"productions[{ch!r}]")

    return LSystem(axiom_syms, prods, math.radians(angle_degrees))


def build_lsystem(cfg: FractalConfig) -> LSystem:
    return lsystem_from_strs(
        cfg.forward_letters,
        cfg.variable_letters,
        cfg.axiom,
        cfg.productions,
        cfg.turn_angle_degrees,
    )


# -------------------------
# Presentation: view state
# -------------------------

_ZOOM_FACTOR = 1.1
_PAN_STEP = 0.1


@dataclass
class Viewport:
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def zoom_in(self) -> None:
        self.scale *= _ZOOM_FACTOR

    def zoom_out(self) -> None:
        self.scale /= _ZOOM_FACTOR

    def pan(self, dx: float, dy: float) -> None:
        # Offsets are fractions of the drawing size; panning slows down when
        # zoomed in.
        self.offset_x += dx * _PAN_STEP / self.scale
        self.offset_y += dy * _PAN_STEP / self.scale

    def reset(self) -> None:
        self.offset_x = 0.0
        self.offset_y = 0.0

    def view_box(
        self, bounds: Bounds, margin: float
    ) -> tuple[float, float, float, float]:
        """Return (min_x, min_y, width, height) of the visible region."""
        w = (bounds.width + 2 * margin) / self.scale
        h = (bounds.height + 2 * margin) / self.scale
        cx, cy = bounds.center
        cx -= self.offset_x * bounds.size
        cy -= self.offset_y * bounds.size
        return (cx - w / 2, cy - h / 2, w, h)


class Session:
    """Interactive state around one engine: depth, viewport, current render.

    Changing the depth queries the engine and re-interprets; view changes
    only touch the viewport.
    """

    def __init__(
        self,
        lsystem: LSystem,
        *,
        step: float,
        heading: float = 0.0,
        mirror: bool = False,
        depth: int = 0,
    ) -> None:
        self.lsystem = lsystem
        self.step = step
        self.heading = heading
        self.mirror = mirror
        self.viewport = Viewport()
        self.depth = max(depth, 0)
        self.render = self._interpret()

    def _interpret(self) -> TurtleRender:
        return render_lsystem(
            self.lsystem.get(self.depth),
            self.lsystem.angle_radians,
            self.step,
            heading=self.heading,
            mirror=self.mirror,
        )

    def set_depth(self, depth: int) -> TurtleRender:
        depth = max(depth, 0)
        if depth != self.depth:
            self.depth = depth
            self.render = self._interpret()
        return self.render

    def deeper(self) -> TurtleRender:
        return self.set_depth(self.depth + 1)

    def shallower(self) -> TurtleRender:
        return self.set_depth(self.depth - 1)

    def handle_key(self, ch: str) -> bool:
        """Apply one key command. Returns False when the session should end."""
        if ch in ("+", "="):
            self.viewport.zoom_in()
        elif ch == "-":
            self.viewport.zoom_out()
        elif ch == "s":
            self.viewport.pan(0, 1)
        elif ch == "w":
            self.viewport.pan(0, -1)
        elif ch == "d":
            self.viewport.pan(-1, 0)
        elif ch == "a":
            self.viewport.pan(1, 0)
        elif ch == "e":
            self.deeper()
        elif ch == "q":
            self.shallower()
        elif ch == "c":
            self.viewport.reset()
        elif ch == "\x1b":
            return False
        else:
            logger.debug("ignoring key %r", ch)
        return True


# -------------------------
# SVG writing
# -------------------------


@dataclass
class PolylineBuffer:
    polylines: list[list[Point]]

    def start_new(self, p: Point) -> None:
        self.polylines.append([p])

    def current(self) -> list[Point]:
        if not self.polylines:
            raise RuntimeError("current() called before start_new()")
        return self.polylines[-1]

    def add_point(self, p: Point) -> None:
        cur = self.current()
        if not cur or cur[-1] != p:
            cur.append(p)


def segments_to_polylines(render: TurtleRender) -> list[list[Point]]:
    """Chain segments that share an endpoint into polylines."""
    buf = PolylineBuffer(polylines=[])
    for a, b in render.segments():
        start = (a.x, a.y)
        if not buf.polylines or buf.current()[-1] != start:
            buf.start_new(start)
        buf.add_point((b.x, b.y))
    return buf.polylines


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def _fmt(x: float, precision: int) -> str:
    # Normalise -0.0 so it never produces "-0" in SVG output.
    if not x:
        x = 0.0
    s = f"{x:.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s in ("-0", ""):
        s = "0"
    return s


def _parse_hex_color(color: str) -> tuple[int, int, int]:
    return (int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16))


def _lerp_color(start: str, end: str, frac: float) -> str:
    a = _parse_hex_color(start)
    b = _parse_hex_color(end)
    mixed = (round(ca + (cb - ca) * frac) for ca, cb in zip(a, b))
    return "#" + "".join(f"{c:02x}" for c in mixed)


def write_svg(
    render: TurtleRender,
    *,
    out_path: str,
    options: SvgOptions,
    viewport: Viewport | None = None,
    title: str | None = None,
) -> None:
    _require(render.segment_count > 0, "No drawable geometry produced.")
    if viewport is None:
        viewport = Viewport()

    precision = options.precision
    minx, miny, w, h = viewport.view_box(render.bounds, options.margin)
    _require(
        w > 0 and h > 0,
        "Degenerate bounds after margin (width or height is zero). "
        "Set svg.margin > 0 to render collinear or single-point geometry.",
    )
    maxy = miny + h

    svg_w_attr = (
        f' width="{_fmt(float(options.width), precision)}"' if options.width else ""
    )
    svg_h_attr = (
        f' height="{_fmt(float(options.height), precision)}"' if options.height else ""
    )

    view_box = (
        f"{_fmt(minx, precision)} {_fmt(miny, precision)} {_fmt(w, precision)} "
        f"{_fmt(h, precision)}"
    )

    lines: list[str] = []
    lines.append('<?xml version="1.0" encoding="UTF-8"?>')
    lines.append(
        "<svg xmlns=\"http://www.w3.org/2000/svg\" version=\"1.1\" "
        f"viewBox=\"{view_box}\"{svg_w_attr}{svg_h_attr}>"
    )

    if title:
        safe_title = (
            title.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        )
        lines.append(f"  <title>{safe_title}</title>")

    if options.background and options.background.lower() != "none":
        lines.append(
            f'  <rect x="{_fmt(minx, precision)}" y="{_fmt(miny, precision)}" '
            f'width="{_fmt(w, precision)}" height="{_fmt(h, precision)}" '
            f'fill="{options.background}" />'
        )

    style = options.style
    common_attr = (
        f'stroke-width="{_fmt(style.stroke_width, precision)}" '
        f'fill="{style.fill}" stroke-linecap="{style.stroke_linecap}" '
        f'stroke-linejoin="{style.stroke_linejoin}"'
    )

    if options.flip_y:
        # Flip about the horizontal center line of the viewBox:
        # translate(0, miny+maxy) scale(1,-1)
        flip_y_line = _fmt(miny + maxy, precision)
        lines.append(f'  <g transform="translate(0,{flip_y_line}) scale(1,-1)">')
        indent = "    "
    else:
        indent = "  "

    if options.gradient:
        start_color, end_color = options.gradient
        total = render.path_distance
        for a, b in render.segments():
            color = _lerp_color(start_color, end_color, (a.dist + b.dist) / 2 / total)
            lines.append(
                f'{indent}<line x1="{_fmt(a.x, precision)}" y1="{_fmt(a.y, precision)}" '
                f'x2="{_fmt(b.x, precision)}" y2="{_fmt(b.y, precision)}" '
                f'stroke="{color}" {common_attr} />'
            )
    else:
        for pl in segments_to_polylines(render):
            pts = " ".join(f"{_fmt(x, precision)},{_fmt(y, precision)}" for x, y in pl)
            lines.append(
                f'{indent}<polyline points="{pts}" stroke="{style.stroke}" '
                f"{common_attr} />"
            )

    if options.flip_y:
        lines.append("  </g>")

    lines.append("</svg>")

    _ensure_parent_dir(out_path)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
        f.write("\n")
    logger.info("wrote %s (%d segments)", out_path, render.segment_count)


# -------------------------
# Config parsing
# -------------------------


def _as_letters(x: Any, path: str) -> str:
    """Accept "FG" or ["F", "G"]; return the letters as one string."""
    if isinstance(x, list):
        for i, item in enumerate(x):
            _require(
                isinstance(item, str) and len(item) == 1,
                f"{path}[{i}] must be a single-character string",
            )
        letters = "".join(x)
    else:
        letters = _as_str(x, path)

    for ch in letters:
        _require(not ch.isspace(), f"{path} must not contain whitespace")
        _require(
            ch not in CONTROL_CHARS,
            f"{path} must not contain the control character {ch!r}",
        )
    _require(
        len(set(letters)) == len(letters), f"{path} must not repeat a letter"
    )
    return letters


def _as_color(x: Any, path: str) -> str:
    s = _as_str(x, path)
    _require(
        len(s) == 7
        and s[0] == "#"
        and all(c in "0123456789abcdefABCDEF" for c in s[1:]),
        f"{path} must be a #rrggbb color",
    )
    return s


def _parse_svg(obj: Any) -> SvgOptions:
    svg = _as_dict(obj, "svg")
    margin = _as_float(svg.get("margin", 10), "svg.margin")
    precision = _as_int(svg.get("precision", 3), "svg.precision")
    _require(0 <= precision <= 10, "svg.precision must be between 0 and 10")
    flip_y = _as_bool(svg.get("flip_y", True), "svg.flip_y")

    width = svg.get("width")
    height = svg.get("height")
    if width is not None:
        width = _as_float(width, "svg.width")
        _require(width > 0, "svg.width must be > 0")
    if height is not None:
        height = _as_float(height, "svg.height")
        _require(height > 0, "svg.height must be > 0")

    style_obj = _as_dict(svg.get("style", {}), "svg.style")
    style = SvgStyle(
        stroke=_as_str(style_obj.get("stroke", "#000"), "svg.style.stroke"),
        stroke_width=_as_float(
            style_obj.get("stroke_width", 1.0), "svg.style.stroke_width"
        ),
        fill=_as_str(style_obj.get("fill", "none"), "svg.style.fill"),
        stroke_linecap=_as_str(
            style_obj.get("stroke_linecap", "round"), "svg.style.stroke_linecap"
        ),
        stroke_linejoin=_as_str(
            style_obj.get("stroke_linejoin", "round"), "svg.style.stroke_linejoin"
        ),
    )

    background = svg.get("background")
    if background is not None:
        background = _as_str(background, "svg.background")

    gradient = svg.get("gradient")
    if gradient is not None:
        _require(
            isinstance(gradient, list) and len(gradient) == 2,
            "svg.gradient must be a list of two colors",
        )
        gradient = (
            _as_color(gradient[0], "svg.gradient[0]"),
            _as_color(gradient[1], "svg.gradient[1]"),
        )

    return SvgOptions(
        margin=margin,
        precision=precision,
        flip_y=flip_y,
        width=width,
        height=height,
        style=style,
        background=background,
        gradient=gradient,
    )


def parse_config(obj: dict[str, Any]) -> FractalConfig:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "L-System"), "name")

    forward_letters = _as_letters(obj.get("forward_letters", ""), "forward_letters")
    variable_letters = _as_letters(
        obj.get("variable_letters", ""), "variable_letters"
    )
    both = sorted(set(forward_letters) & set(variable_letters))
    _require(
        not both,
        f"letters declared as both forward and variable: {''.join(both)!r}",
    )

    _require("axiom" in obj, "axiom is required")
    axiom = _as_str(obj["axiom"], "axiom")
    _require(len(axiom) > 0, "axiom must be non-empty")

    prods_obj = _as_dict(obj.get("productions", {}), "productions")
    productions: dict[str, str] = {}
    for k, v in prods_obj.items():
        _require(
            isinstance(k, str) and len(k) == 1,
            "productions keys must be single-character strings",
        )
        productions[k] = _as_str(v, f"productions['{k}']")

    _require("turn_angle_degrees" in obj, "turn_angle_degrees is required")
    turn_angle = _as_float(obj["turn_angle_degrees"], "turn_angle_degrees")

    depth = _as_int(obj.get("depth", 0), "depth")
    _require(depth >= 0, "depth must be >= 0")

    step = _as_float(obj.get("step", 10), "step")
    _require(step > 0, "step must be > 0")

    heading = _as_float(obj.get("heading_degrees", 0), "heading_degrees")
    mirror = _as_bool(obj.get("mirror", False), "mirror")

    svg = _parse_svg(obj.get("svg", {}))

    return FractalConfig(
        name=name,
        forward_letters=forward_letters,
        variable_letters=variable_letters,
        axiom=axiom,
        productions=productions,
        turn_angle_degrees=turn_angle,
        depth=depth,
        step=step,
        heading_degrees=heading,
        mirror=mirror,
        svg=svg,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def load_config(path: str) -> FractalConfig:
    return parse_config(load_json(path))


def open_session(
    cfg: FractalConfig, *, depth: int | None = None, step: float | None = None
) -> Session:
    return Session(
        build_lsystem(cfg),
        step=cfg.step if step is None else step,
        heading=math.radians(cfg.heading_degrees),
        mirror=cfg.mirror,
        depth=cfg.depth if depth is None else depth,
    )


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
INPUT JSON SYNTAX

Every command consumes a single JSON file describing:
  - the alphabet (forward and variable letters)
  - the L-system (axiom, productions, turn angle)
  - turtle and SVG output options

Top-level keys

  name: string (optional)
      A human-readable title; written into the SVG <title>.

  forward_letters: string or list of characters (optional, default "")
      Letters that draw a forward segment when interpreted.

  variable_letters: string or list of characters (optional, default "")
      Placeholder letters that are rewritten but never drawn.

  axiom: string (required)
      The iteration-0 word, over the declared letters and the control
      characters:  + turn left   - turn right   [ push   ] pop

  productions: object mapping single letter -> string (optional)
      Rewriting rules. Letters without a rule rewrite to themselves.
      Any character that is neither a declared letter nor a control
      character is rejected as an unknown symbol.

  turn_angle_degrees: number (required)
      Angle applied by + and -.

  depth: integer >= 0 (default 0)
      Iteration depth rendered by `render`.

  step: number > 0 (default 10)
      Length of one forward segment.

  heading_degrees: number (default 0)
      Initial heading; 0 = +X, 90 = +Y.

  mirror: boolean (default false)
      Swap the turn directions of + and -.

SVG options

  svg: object (optional)

    svg.margin: number (default 10)
    svg.precision: integer 0..10 (default 3)
    svg.flip_y: boolean (default true)
    svg.width / svg.height: number (optional)
    svg.background: string color (optional)
    svg.style: object (optional)
        stroke, stroke_width, fill, stroke_linecap, stroke_linejoin
    svg.gradient: ["#rrggbb", "#rrggbb"] (optional)
        Color each segment by its distance along the path, from the first
        color at the start to the second at the end.

Example (dragon curve):

    {
      "forward_letters": "F",
      "variable_letters": "XY",
      "axiom": "FX",
      "productions": {"X": "X+YF+", "Y": "-FX-Y"},
      "turn_angle_degrees": 90,
      "depth": 10
    }

VIEW KEYS (render --keys)

  + or =  zoom in          -  zoom out
  w a s d pan              c  reset pan
  e       one level deeper q  one level shallower
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem_fractals.py",
        description="L-system fractal renderer that outputs SVG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser(
        "render",
        help="Render an L-system JSON config to an SVG file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pr.add_argument("config", help="Path to the input JSON config.")
    pr.add_argument("output", help="Path to write the SVG output.")
    pr.add_argument(
        "--depth", type=int, default=None, help="Override the config depth."
    )
    pr.add_argument("--step", type=float, default=None, help="Override the step.")
    pr.add_argument(
        "--keys",
        default="",
        help="View keys to apply before writing, e.g. 'ee++' (see --help).",
    )

    pf = sub.add_parser(
        "frames",
        help="Render every depth from 0 to --max-depth into a directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pf.add_argument("config", help="Path to the input JSON config.")
    pf.add_argument("outdir", help="Directory for frame_NNN.svg files.")
    pf.add_argument("--max-depth", type=int, required=True)
    pf.add_argument("--step", type=float, default=None, help="Override the step.")

    pv = sub.add_parser(
        "validate",
        help="Validate a JSON config and print a brief summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("config", help="Path to the input JSON config.")
    pv.add_argument(
        "--depth", type=int, default=None, help="Override the config depth."
    )

    return p


# -------------------------
# Commands
# -------------------------


def cmd_render(
    config_path: str,
    output_path: str,
    depth: int | None,
    step: float | None,
    keys: str,
) -> None:
    cfg = load_config(config_path)
    _require(step is None or step > 0, "--step must be > 0")
    session = open_session(cfg, depth=depth, step=step)

    for ch in keys:
        if not session.handle_key(ch):
            break

    write_svg(
        session.render,
        out_path=output_path,
        options=cfg.svg,
        viewport=session.viewport,
        title=cfg.name,
    )


def cmd_frames(
    config_path: str, outdir: str, max_depth: int, step: float | None
) -> None:
    cfg = load_config(config_path)
    _require(max_depth >= 0, "--max-depth must be >= 0")
    _require(step is None or step > 0, "--step must be > 0")
    session = open_session(cfg, depth=0, step=step)

    for d in range(max_depth + 1):
        render = session.set_depth(d)
        write_svg(
            render,
            out_path=os.path.join(outdir, f"frame_{d:03d}.svg"),
            options=cfg.svg,
            title=f"{cfg.name} (depth {d})",
        )


_VALIDATE_SYMBOL_LIMIT = 10_000


def cmd_validate(config_path: str, depth: int | None) -> None:
    cfg = load_config(config_path)
    lsys = build_lsystem(cfg)
    depth = cfg.depth if depth is None else depth
    _require(depth >= 0, "--depth must be >= 0")

    print(f"name: {cfg.name}")
    print(
        f"alphabet: {len(cfg.forward_letters)} forward, "
        f"{len(cfg.variable_letters)} variable"
    )
    print(f"axiom length: {len(cfg.axiom)}")
    print(f"productions: {len(cfg.productions)}")
    print(
        "turtle: "
        f"angle={cfg.turn_angle_degrees} step={cfg.step} "
        f"heading={cfg.heading_degrees}deg mirror={cfg.mirror}"
    )
    print(
        f"svg: margin={cfg.svg.margin} precision={cfg.svg.precision} "
        f"flip_y={cfg.svg.flip_y}"
    )

    # Levels are streamed and capped so deep configs cannot exhaust memory.
    for d in range(depth + 1):
        n = sum(1 for _ in itertools.islice(lsys.iter_level(d), _VALIDATE_SYMBOL_LIMIT))
        label = f"{n}+" if n == _VALIDATE_SYMBOL_LIMIT else str(n)
        print(f"level {d}: {label} symbols")

    sample = list(itertools.islice(lsys.iter_level(depth), _VALIDATE_SYMBOL_LIMIT))
    truncated = len(sample) == _VALIDATE_SYMBOL_LIMIT
    render = render_lsystem(
        sample,
        lsys.angle_radians,
        cfg.step,
        heading=math.radians(cfg.heading_degrees),
        mirror=cfg.mirror,
    )
    print(f"segments (sampled): {render.segment_count}")
    if truncated:
        print(
            f"warning: expansion exceeds {_VALIDATE_SYMBOL_LIMIT} symbols; "
            "geometry stats are based on the first portion only"
        )
    if render.segment_count == 0:
        raise ConfigError("Config produces no drawable geometry")


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "render":
            cmd_render(args.config, args.output, args.depth, args.step, args.keys)
        elif args.cmd == "frames":
            cmd_frames(args.config, args.outdir, args.max_depth, args.step)
        elif args.cmd == "validate":
            cmd_validate(args.config, args.depth)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except NestingError as e:
        print(f"Interpretation error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
