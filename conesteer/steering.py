"""Cone detection and steering-angle estimation from BGR camera frames."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Sequence

import numpy as np

__all__ = [
    "BLUE_LOWER",
    "BLUE_UPPER",
    "YELLOW_LOWER",
    "YELLOW_UPPER",
    "OFFSET_X",
    "OFFSET_Y",
    "SCALE_FACTOR",
    "MIN_CONE_AREA",
    "Point",
    "UNSET",
    "SteeringProcessor",
    "bgr_to_hsv",
    "in_range",
    "create_ignore_mask",
    "find_centroids",
]

BLUE_LOWER = (81, 102, 40)
BLUE_UPPER = (148, 255, 123)
YELLOW_LOWER = (16, 0, 123)
YELLOW_UPPER = (90, 255, 255)

OFFSET_X = 200
OFFSET_Y = 48
SCALE_FACTOR = 0.001
MIN_CONE_AREA = 50

_BLUE = (255, 0, 0)
_YELLOW = (0, 255, 255)
_GREEN = (0, 255, 0)
_RED = (0, 0, 255)

# Neighbour offsets (dx, dy), clockwise on screen starting east.
_RING = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))
_RING_INDEX = {offset: i for i, offset in enumerate(_RING)}
_WEST = 4


@dataclass(frozen=True)
class Point:
    """Integer pixel position; x grows right, y grows down."""

    x: int
    y: int

    def __add__(self, other: object) -> Point:
        if not isinstance(other, Point):
            return NotImplemented
        return Point(self.x + other.x, self.y + other.y)


UNSET = Point(-1, -1)


def _as_bgr(image) -> np.ndarray:
    arr = np.asarray(image)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"expected an HxWx3 BGR image, got shape {arr.shape}")
    return arr


def bgr_to_hsv(image) -> np.ndarray:
    """Convert an 8-bit BGR image to HSV with H in [0, 180) and S, V in [0, 255]."""
    f = _as_bgr(image).astype(np.float64)
    b, g, r = f[..., 0], f[..., 1], f[..., 2]
    v = f.max(axis=2)
    diff = v - f.min(axis=2)
    with np.errstate(divide="ignore", invalid="ignore"):
        s = np.where(v > 0, diff * 255.0 / v, 0.0)
        h = np.where(
            v == r,
            60.0 * (g - b) / diff,
            np.where(v == g, 120.0 + 60.0 * (b - r) / diff, 240.0 + 60.0 * (r - g) / diff),
        )
    h = np.where(diff == 0, 0.0, h)
    h = np.where(h < 0, h + 360.0, h)
    h = np.rint(h / 2.0) % 180
    hsv = np.stack([h, np.clip(np.rint(s), 0, 255), v], axis=2)
    return hsv.astype(np.uint8)


def in_range(hsv, lower: Sequence[float], upper: Sequence[float]) -> np.ndarray:
    """Return a mask that is 255 where every channel lies within [lower, upper]."""
    arr = np.asarray(hsv)
    if arr.ndim == 2:
        arr = arr[..., np.newaxis]
    lo = np.asarray(lower)
    hi = np.asarray(upper)
    inside = np.all((arr >= lo) & (arr <= hi), axis=-1)
    return np.where(inside, 255, 0).astype(np.uint8)


def _convex_polygon_mask(polygon: Sequence[Point], rows: int, cols: int) -> np.ndarray:
    ys, xs = np.mgrid[0:rows, 0:cols]
    crosses = []
    for start, end in zip(polygon, [*polygon[1:], polygon[0]]):
        crosses.append((end.x - start.x) * (ys - start.y) - (end.y - start.y) * (xs - start.x))
    stacked = np.stack(crosses)
    return np.all(stacked >= 0, axis=0) | np.all(stacked <= 0, axis=0)


def create_ignore_mask(image) -> np.ndarray:
    """Mask (255 = ignored) covering the top 55% and the car's bottom-middle area."""
    rows, cols = np.asarray(image).shape[:2]
    mask = np.zeros((rows, cols), dtype=np.uint8)
    bottom_middle = [
        Point(cols // 3, rows * 2 // 3),
        Point(cols * 2 // 3, rows * 2 // 3),
        Point(cols, rows),
        Point(0, rows),
    ]
    mask[_convex_polygon_mask(bottom_middle, rows, cols)] = 255
    mask[: int(rows * 0.55), :] = 255
    return mask


def _outside_background(fg: np.ndarray) -> np.ndarray:
    """Background pixels 4-connected to the (padded) image border."""
    height, width = fg.shape
    outside = np.zeros_like(fg)
    outside[0, 0] = True
    queue = deque([(0, 0)])
    while queue:
        y, x = queue.popleft()
        for ny, nx in ((y - 1, x), (y + 1, x), (y, x - 1), (y, x + 1)):
            if 0 <= ny < height and 0 <= nx < width and not fg[ny, nx] and not outside[ny, nx]:
                outside[ny, nx] = True
                queue.append((ny, nx))
    return outside


def _label_component(fg: np.ndarray, labelled: np.ndarray, y: int, x: int) -> None:
    labelled[y, x] = True
    queue = deque([(y, x)])
    while queue:
        cy, cx = queue.popleft()
        for dx, dy in _RING:
            ny, nx = cy + dy, cx + dx
            if fg[ny, nx] and not labelled[ny, nx]:
                labelled[ny, nx] = True
                queue.append((ny, nx))


def _trace_outer_boundary(fg: np.ndarray, start: tuple[int, int]) -> list[tuple[int, int]]:
    """Moore-neighbour trace from the topmost-leftmost pixel; returns (x, y) points."""
    sy, sx = start
    current = (sx, sy)
    back_dir = _WEST
    contour = [current]
    first_move = None
    while True:
        found = None
        for step in range(1, 9):
            direction = (back_dir + step) % 8
            dx, dy = _RING[direction]
            if fg[current[1] + dy, current[0] + dx]:
                found = direction
                break
        if found is None:
            return contour
        dx, dy = _RING[found]
        nxt = (current[0] + dx, current[1] + dy)
        bdx, bdy = _RING[(found - 1) % 8]
        background = (current[0] + bdx, current[1] + bdy)
        move = (current, nxt)
        if first_move is None:
            first_move = move
        elif move == first_move:
            break
        contour.append(nxt)
        current = nxt
        back_dir = _RING_INDEX[(background[0] - nxt[0], background[1] - nxt[1])]
    if len(contour) > 1 and contour[-1] == contour[0]:
        contour.pop()
    return contour


def _polygon_moments(points: np.ndarray) -> tuple[float, float, float]:
    xs = points[:, 0].astype(np.float64)
    ys = points[:, 1].astype(np.float64)
    xn = np.roll(xs, -1)
    yn = np.roll(ys, -1)
    cross = xs * yn - xn * ys
    m00 = cross.sum() / 2.0
    m10 = ((xs + xn) * cross).sum() / 6.0
    m01 = ((ys + yn) * cross).sum() / 6.0
    return m00, m10, m01


def find_centroids(mask, min_area: float = MIN_CONE_AREA) -> list[Point]:
    """Centroids of the outer contours in ``mask`` whose area exceeds ``min_area``.

    Contours nested inside another blob's hole are ignored. Results come in
    raster order of each blob's topmost-leftmost pixel.
    """
    arr = np.asarray(mask)
    if arr.ndim != 2:
        raise ValueError(f"expected a 2-D mask, got shape {arr.shape}")
    fg = np.pad(arr != 0, 1)
    outside = _outside_background(fg)
    labelled = np.zeros_like(fg)
    centroids: list[Point] = []
    for y, x in np.argwhere(fg):
        if labelled[y, x]:
            continue
        _label_component(fg, labelled, y, x)
        if not outside[y - 1, x]:
            continue
        contour = np.array(_trace_outer_boundary(fg, (int(y), int(x)))) - 1
        m00, m10, m01 = _polygon_moments(contour)
        if abs(m00) > min_area and m00 != 0:
            centroids.append(Point(round(m10 / m00), round(m01 / m00)))
    return centroids


def _paint(img: np.ndarray, centre_x: float, centre_y: float, reach: float, selector, color) -> None:
    rows, cols = img.shape[:2]
    x0 = max(int(np.floor(centre_x - reach)), 0)
    x1 = min(int(np.ceil(centre_x + reach)), cols - 1)
    y0 = max(int(np.floor(centre_y - reach)), 0)
    y1 = min(int(np.ceil(centre_y + reach)), rows - 1)
    if x0 > x1 or y0 > y1:
        return
    ys, xs = np.mgrid[y0 : y1 + 1, x0 : x1 + 1]
    region = img[y0 : y1 + 1, x0 : x1 + 1]
    region[selector(xs, ys)] = color


def _draw_circle(img: np.ndarray, centre: Point, radius: int, color, thickness: int) -> None:
    if thickness < 0:
        inner, outer = -1.0, float(radius)
    else:
        half = max(thickness / 2.0, 0.5)
        inner, outer = radius - half, radius + half

    def selector(xs, ys):
        dist = np.hypot(xs - centre.x, ys - centre.y)
        return (dist >= inner) & (dist <= outer)

    _paint(img, centre.x, centre.y, outer + 1, selector, color)


def _draw_line(img: np.ndarray, start: Point, end: Point, color, thickness: int) -> None:
    half = max(thickness / 2.0, 0.5)
    dx, dy = end.x - start.x, end.y - start.y
    length2 = dx * dx + dy * dy

    def selector(xs, ys):
        if length2 == 0:
            t = 0.0
        else:
            t = np.clip(((xs - start.x) * dx + (ys - start.y) * dy) / length2, 0.0, 1.0)
        return (xs - (start.x + t * dx)) ** 2 + (ys - (start.y + t * dy)) ** 2 <= half * half

    mid_x = (start.x + end.x) / 2.0
    mid_y = (start.y + end.y) / 2.0
    reach = max(abs(dx), abs(dy)) / 2.0 + half + 1
    _paint(img, mid_x, mid_y, reach, selector, color)


def _midpoint(a: Point, b: Point) -> Point:
    # Integer halves truncate toward zero.
    return Point(int((a.x + b.x) / 2), int((a.y + b.y) / 2))


def _nearest_first(points: list[Point]) -> list[Point]:
    return sorted(points, key=lambda p: -p.y)


class SteeringProcessor:
    """Estimates a steering angle from blue (left) and yellow (right) cones.

    The last seen primary cone of each colour is remembered between frames.
    """

    def __init__(self, offset_x: int = OFFSET_X, offset_y: int = OFFSET_Y,
                 scale_factor: float = SCALE_FACTOR) -> None:
        self.offset_x = offset_x
        self.offset_y = offset_y
        self.scale_factor = scale_factor
        self.last_blue = UNSET
        self.last_yellow = UNSET
        self.debug_images: dict[str, np.ndarray] = {}

    def reset(self) -> None:
        """Forget remembered cones and debug images."""
        self.last_blue = UNSET
        self.last_yellow = UNSET
        self.debug_images = {}

    def process_frame(self, img: np.ndarray, verbose: bool = False) -> float:
        """Return the steering angle for a BGR frame, annotating ``img`` in place.

        Positive values steer left. With ``verbose`` the annotated frame and the
        colour masks are kept in ``debug_images``.
        """
        hsv = bgr_to_hsv(img)
        keep = create_ignore_mask(img) == 0
        blue_mask = np.where(keep, in_range(hsv, BLUE_LOWER, BLUE_UPPER), 0).astype(np.uint8)
        yellow_mask = np.where(keep, in_range(hsv, YELLOW_LOWER, YELLOW_UPPER), 0).astype(np.uint8)

        blue_centroids = find_centroids(blue_mask, MIN_CONE_AREA)
        yellow_centroids = find_centroids(yellow_mask, MIN_CONE_AREA)
        for centroid in blue_centroids:
            _draw_circle(img, centroid, 5, _BLUE, -1)
        for centroid in yellow_centroids:
            _draw_circle(img, centroid, 5, _YELLOW, -1)

        blue = self.last_blue
        yellow = self.last_yellow
        if blue_centroids:
            blue = max(blue_centroids, key=lambda p: p.y)
            self.last_blue = blue
        if yellow_centroids:
            yellow = max(yellow_centroids, key=lambda p: p.y)
            self.last_yellow = yellow

        if blue == UNSET:
            blue = yellow + Point(-self.offset_x, self.offset_y)
        if yellow == UNSET:
            yellow = blue + Point(self.offset_x, self.offset_y)

        _draw_circle(img, blue, 8, _BLUE, 2)
        _draw_circle(img, yellow, 8, _YELLOW, 2)

        blue_rail = _nearest_first(blue_centroids)
        yellow_rail = _nearest_first(yellow_centroids)
        for near, far in zip(blue_rail, blue_rail[1:]):
            _draw_line(img, near, far, _BLUE, 2)
        for near, far in zip(yellow_rail, yellow_rail[1:]):
            _draw_line(img, near, far, _YELLOW, 2)

        centres = [_midpoint(b, y) for b, y in zip(blue_rail, yellow_rail)]
        for centre in centres:
            _draw_circle(img, centre, 3, _GREEN, -1)
        for near, far in zip(centres, centres[1:]):
            _draw_line(img, near, far, _GREEN, 2)

        path_centre = centres[0] if centres else _midpoint(blue, yellow)
        _draw_circle(img, path_centre, 8, _GREEN, 2)

        rows, cols = img.shape[:2]
        steering = (path_centre.x - cols // 2) * self.scale_factor
        _draw_line(img, Point(cols // 2, rows), path_centre, _RED, 2)

        if verbose:
            self.debug_images = {
                "Processed Frame": img,
                "Blue Mask": blue_mask,
                "Yellow Mask": yellow_mask,
            }
        return -steering