"""Camera transform shared by hover and auto-fit."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Camera:
    """
    Zoom/pan transform from world to screen space.

    screen = world * k + (x, y)
    """

    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def __post_init__(self) -> None:
        if self.k <= 0:
            raise ValueError(f"Camera zoom scale must be positive, got {self.k}")

    def screen_to_world(self, point: Point) -> Point:
        return Point((point.x - self.x) / self.k, (point.y - self.y) / self.k)

    def world_to_screen(self, point: Point) -> Point:
        return Point(point.x * self.k + self.x, point.y * self.k + self.y)
