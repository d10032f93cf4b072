"""
World-frame waypoint tracks for closed-loop simulation.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

TRACK_KINDS = ("straight", "sine", "circle")


@dataclass
class Track:
    """Dense polyline of world-frame waypoints."""
    x: np.ndarray
    y: np.ndarray
    closed: bool = False

    def __len__(self) -> int:
        return len(self.x)

    def heading_at(self, index: int) -> float:
        """Tangent heading at a waypoint."""
        i = min(index, len(self) - 2)
        return float(np.arctan2(self.y[i + 1] - self.y[i], self.x[i + 1] - self.x[i]))

    def nearest_index(self, px: float, py: float) -> int:
        return int(np.argmin((self.x - px) ** 2 + (self.y - py) ** 2))

    def distance_to(self, px: float, py: float) -> float:
        """Distance from a point to the polyline."""
        ax, ay = self.x[:-1], self.y[:-1]
        bx, by = self.x[1:], self.y[1:]
        abx, aby = bx - ax, by - ay
        seg_len2 = np.maximum(abx ** 2 + aby ** 2, 1e-12)
        t = np.clip(((px - ax) * abx + (py - ay) * aby) / seg_len2, 0.0, 1.0)
        dx = ax + t * abx - px
        dy = ay + t * aby - py
        return float(np.sqrt(np.min(dx ** 2 + dy ** 2)))

    def lookahead(self, px: float, py: float, count: int = 6, stride: int = 1) -> Tuple[list, list]:
        """
        The next ``count`` waypoints starting at the one nearest the vehicle.

        Closed tracks wrap around; open tracks stop at the last waypoint.
        """
        start = self.nearest_index(px, py)
        idx = start + stride * np.arange(count)
        if self.closed:
            idx = idx % len(self)
        else:
            idx = idx[idx < len(self)]
        return self.x[idx].tolist(), self.y[idx].tolist()

    def at_end(self, px: float, py: float, margin: int = 6) -> bool:
        return not self.closed and self.nearest_index(px, py) >= len(self) - margin


def generate_track(
    kind: str = "sine",
    length: float = 300.0,
    spacing: float = 5.0,
    amplitude: float = 10.0,
    wavelength: float = 120.0,
    radius: float = 60.0,
) -> Track:
    """
    Generate a waypoint track.

    Args:
        kind: "straight", "sine" or "circle"
        length: Track length along x for open tracks
        spacing: Distance between waypoints
        amplitude: Lateral amplitude of the sine track
        wavelength: Wavelength of the sine track
        radius: Radius of the circle track (counter-clockwise)
    """
    if kind == "straight":
        xs = np.arange(0.0, length + spacing, spacing)
        return Track(x=xs, y=np.zeros_like(xs))

    if kind == "sine":
        xs = np.arange(0.0, length + spacing, spacing)
        ys = amplitude * np.sin(2.0 * np.pi * xs / wavelength)
        return Track(x=xs, y=ys)

    if kind == "circle":
        n = max(int(np.ceil(2.0 * np.pi * radius / spacing)), 8)
        angles = np.linspace(-np.pi / 2, 3 * np.pi / 2, n, endpoint=False)
        return Track(x=radius * np.cos(angles), y=radius + radius * np.sin(angles), closed=True)

    raise ValueError(f"Unknown track kind '{kind}', expected one of {TRACK_KINDS}")
