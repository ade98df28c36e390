from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable

from maze import Cell, Direction, Grid, Point

# Passage cells lit along each cardinal direction.
CORRIDOR_DEPTH = 3


class Visibility(Enum):
    FOGGED = "fogged"
    REVEALED = "revealed"


class Tag(Enum):
    WANDERER = "wanderer"
    WALL = "wall"
    PASSAGE = "passage"
    START = "start"
    END = "end"
    SOLVED_PATH = "solved_path"


def adjacent_walls(grid: Grid, at: Point) -> list[Point]:
    """Up to eight walls around at: the cardinal ones, plus each corner whose two sides are walls."""
    hits: Dict[Direction, Point] = {}
    for d in Direction:
        nxt = grid.next_point(at, d)
        if nxt is not None and grid.cell(nxt) is Cell.WALL:
            hits[d] = nxt

    walls = list(hits.values())
    for vertical in (Direction.N, Direction.S):
        for horizontal in (Direction.W, Direction.E):
            if vertical in hits and horizontal in hits:
                walls.append(Point(x=hits[horizontal].x, y=hits[vertical].y))
    return walls


def visible_cells(
    grid: Grid,
    position: Point,
    mode: Visibility,
    *,
    start: Point,
    end: Point,
    solution: Iterable[Point] = (),
) -> Dict[Point, Tag]:
    """Map every currently visible cell to what it shows.

    Later entries win, so the wanderer and landmarks are written after the
    cells they may overlap.
    """
    seen: Dict[Point, Tag] = {}

    if mode is Visibility.REVEALED:
        for point in grid.points():
            seen[point] = Tag.WALL if grid.cell(point) is Cell.WALL else Tag.PASSAGE
        for point in solution:
            seen[point] = Tag.SOLVED_PATH
        seen[start] = Tag.START
        seen[end] = Tag.END
        return seen

    for wall in adjacent_walls(grid, position):
        seen[wall] = Tag.WALL

    for d in Direction:
        cur = position
        for _ in range(CORRIDOR_DEPTH):
            nxt = grid.next_point(cur, d)
            if nxt is None or grid.cell(nxt) is not Cell.PASSAGE:
                break
            seen[nxt] = Tag.END if nxt == end else Tag.PASSAGE
            for wall in adjacent_walls(grid, nxt):
                seen[wall] = Tag.WALL
            cur = nxt

    seen[position] = Tag.WANDERER
    if position != start:
        seen[start] = Tag.START
    return seen
