from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Sequence


class Direction(Enum):
    N = (0, -1)
    S = (0, 1)
    E = (1, 0)
    W = (-1, 0)

    @property
    def delta(self) -> tuple[int, int]:
        return self.value

    @property
    def opposite(self) -> "Direction":
        return {
            Direction.N: Direction.S,
            Direction.S: Direction.N,
            Direction.E: Direction.W,
            Direction.W: Direction.E,
        }[self]


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def step(self, direction: Direction, distance: int = 1) -> "Point":
        dx, dy = direction.delta
        return Point(x=self.x + dx * distance, y=self.y + dy * distance)


class Cell(Enum):
    WALL = "#"
    PASSAGE = "."


class Generator(Enum):
    RECURSIVE_BACKTRACKING = "recursive_backtracking"
    KRUSKAL = "kruskal"
    PRIMS = "prims"
    ALDOUS_BRODER = "aldous_broder"
    RECURSIVE_DIVISION = "recursive_division"

    @property
    def title(self) -> str:
        return {
            Generator.RECURSIVE_BACKTRACKING: "Recursive Backtracking",
            Generator.KRUSKAL: "Randomized Kruskal's",
            Generator.PRIMS: "Randomized Prim's",
            Generator.ALDOUS_BRODER: "Aldous Broder",
            Generator.RECURSIVE_DIVISION: "Recursive Division",
        }[self]


class MazeGenerationError(RuntimeError):
    """Raised when a grid cannot provide a usable solution path."""


@dataclass(frozen=True)
class Grid:
    width: int
    height: int
    cells: tuple[tuple[Cell, ...], ...]

    @classmethod
    def from_rows(cls, rows: Sequence[str]) -> "Grid":
        """Build a grid from text rows of '#' (wall) and '.' (passage)."""
        if not rows or not rows[0]:
            raise ValueError("Grid needs at least one row and one column")
        width = len(rows[0])
        cells = []
        for y, row in enumerate(rows):
            if len(row) != width:
                raise ValueError(f"Row {y} has width {len(row)}, expected {width}")
            cells.append(tuple(Cell(ch) for ch in row))
        return cls(width=width, height=len(rows), cells=tuple(cells))

    def rows(self) -> list[str]:
        return ["".join(cell.value for cell in row) for row in self.cells]

    def in_bounds(self, point: Point) -> bool:
        return 0 <= point.x < self.width and 0 <= point.y < self.height

    def cell(self, point: Point) -> Cell:
        if not self.in_bounds(point):
            raise ValueError(f"Out of bounds point: {point}")
        return self.cells[point.y][point.x]

    def is_passage(self, point: Point) -> bool:
        return self.in_bounds(point) and self.cells[point.y][point.x] is Cell.PASSAGE

    def next_point(self, point: Point, direction: Direction) -> Point | None:
        nxt = point.step(direction)
        if not self.in_bounds(nxt):
            return None
        return nxt

    def open_neighbors(self, point: Point) -> list[Point]:
        return [
            nxt
            for nxt in (point.step(d) for d in Direction)
            if self.is_passage(nxt)
        ]

    def points(self) -> Iterator[Point]:
        for y in range(self.height):
            for x in range(self.width):
                yield Point(x=x, y=y)

    def passages(self) -> Iterator[Point]:
        return (p for p in self.points() if self.cells[p.y][p.x] is Cell.PASSAGE)


# ---------------------------------------------------------------------------
# Generation
#
# Rooms live on even coordinates; the cell between two neighbouring rooms is
# the connector that carving opens. Cells with two odd coordinates stay walls.
# ---------------------------------------------------------------------------


def is_room(point: Point, width: int, height: int) -> bool:
    return 0 <= point.x < width and 0 <= point.y < height and point.x % 2 == 0 and point.y % 2 == 0


def random_room(width: int, height: int, rng: random.Random) -> Point:
    return Point(x=2 * rng.randrange((width + 1) // 2), y=2 * rng.randrange((height + 1) // 2))


def _rooms(width: int, height: int) -> list[Point]:
    return [Point(x=x, y=y) for y in range(0, height, 2) for x in range(0, width, 2)]


def _room_links(room: Point, width: int, height: int) -> list[tuple[Point, Point]]:
    """(neighbouring room, connector) pairs for every room two cells away."""
    links = []
    for d in Direction:
        nxt = room.step(d, 2)
        if is_room(nxt, width, height):
            links.append((nxt, room.step(d)))
    return links


def _carve_backtracking(width: int, height: int, start: Point, rng: random.Random) -> set[Point]:
    # Iterative backtracker: avoids RecursionError on large grids
    passages = {start}
    stack = [start]
    while stack:
        room = stack[-1]
        unvisited = [(nxt, link) for nxt, link in _room_links(room, width, height) if nxt not in passages]
        if unvisited:
            nxt, link = rng.choice(unvisited)
            passages.update((link, nxt))
            stack.append(nxt)
        else:
            stack.pop()
    return passages


def _carve_kruskal(width: int, height: int, start: Point, rng: random.Random) -> set[Point]:
    rooms = _rooms(width, height)
    parent: Dict[Point, Point] = {room: room for room in rooms}

    def find(room: Point) -> Point:
        while parent[room] != room:
            parent[room] = parent[parent[room]]
            room = parent[room]
        return room

    edges = []
    for room in rooms:
        for d in (Direction.E, Direction.S):
            nxt = room.step(d, 2)
            if is_room(nxt, width, height):
                edges.append((room, room.step(d), nxt))
    rng.shuffle(edges)

    passages = set(rooms)
    for a, link, b in edges:
        root_a, root_b = find(a), find(b)
        if root_a != root_b:
            parent[root_a] = root_b
            passages.add(link)
    return passages


def _carve_prims(width: int, height: int, start: Point, rng: random.Random) -> set[Point]:
    passages = {start}
    frontier = list(_room_links(start, width, height))
    while frontier:
        nxt, link = frontier.pop(rng.randrange(len(frontier)))
        if nxt in passages:
            continue
        passages.update((link, nxt))
        frontier.extend(item for item in _room_links(nxt, width, height) if item[0] not in passages)
    return passages


def _carve_aldous_broder(width: int, height: int, start: Point, rng: random.Random) -> set[Point]:
    remaining = len(_rooms(width, height)) - 1
    passages = {start}
    room = start
    while remaining:
        nxt, link = rng.choice(_room_links(room, width, height))
        if nxt not in passages:
            passages.update((link, nxt))
            remaining -= 1
        room = nxt
    return passages


def _carve_recursive_division(width: int, height: int, start: Point, rng: random.Random) -> set[Point]:
    passages = set(_rooms(width, height))
    for room in _rooms(width, height):
        for d in (Direction.E, Direction.S):
            if is_room(room.step(d, 2), width, height):
                passages.add(room.step(d))

    # Chambers are inclusive ranges of room indices: (i0, j0, i1, j1).
    chambers = [(0, 0, (width - 1) // 2, (height - 1) // 2)]
    while chambers:
        i0, j0, i1, j1 = chambers.pop()
        cols, rows = i1 - i0 + 1, j1 - j0 + 1
        if cols < 2 and rows < 2:
            continue
        horizontal = rows > cols or (rows == cols and rng.random() < 0.5)
        if horizontal:
            j = rng.randint(j0, j1 - 1)
            gap = rng.randint(i0, i1)
            for i in range(i0, i1 + 1):
                if i != gap:
                    passages.discard(Point(x=2 * i, y=2 * j + 1))
            chambers.append((i0, j0, i1, j))
            chambers.append((i0, j + 1, i1, j1))
        else:
            i = rng.randint(i0, i1 - 1)
            gap = rng.randint(j0, j1)
            for j in range(j0, j1 + 1):
                if j != gap:
                    passages.discard(Point(x=2 * i + 1, y=2 * j))
            chambers.append((i0, j0, i, j1))
            chambers.append((i + 1, j0, i1, j1))
    return passages


_CARVERS: Dict[Generator, Callable[[int, int, Point, random.Random], set[Point]]] = {
    Generator.RECURSIVE_BACKTRACKING: _carve_backtracking,
    Generator.KRUSKAL: _carve_kruskal,
    Generator.PRIMS: _carve_prims,
    Generator.ALDOUS_BRODER: _carve_aldous_broder,
    Generator.RECURSIVE_DIVISION: _carve_recursive_division,
}


def generate(
    width: int,
    height: int,
    algorithm: Generator = Generator.RECURSIVE_BACKTRACKING,
    start: Point | None = None,
    *,
    rng: random.Random | None = None,
    seed: int | None = None,
) -> Grid:
    """Generate a perfect maze: every passage reaches every other by exactly one simple path.

    start, when given, must be a room cell; algorithms that grow from a seed
    cell grow from it. Pass either a shared rng or a seed for reproducibility.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Maze size must be positive, got {width}x{height}")
    if rng is None:
        rng = random.Random(seed)
    if start is None:
        start = random_room(width, height, rng)
    elif not is_room(start, width, height):
        raise ValueError(f"Start {start} is not a room cell of a {width}x{height} maze")

    passages = _CARVERS[Generator(algorithm)](width, height, start, rng)
    cells = tuple(
        tuple(Cell.PASSAGE if Point(x=x, y=y) in passages else Cell.WALL for x in range(width))
        for y in range(height)
    )
    return Grid(width=width, height=height, cells=cells)


# ---------------------------------------------------------------------------
# Solving
# ---------------------------------------------------------------------------


def _bfs(grid: Grid, start: Point) -> tuple[Dict[Point, Point | None], Point]:
    """Breadth-first parents from start, plus the last (farthest) point reached."""
    if not grid.is_passage(start):
        raise MazeGenerationError(f"Cannot solve from {start}: not a passage")
    parent: Dict[Point, Point | None] = {start: None}
    q = deque([start])
    last = start
    while q:
        cur = q.popleft()
        last = cur
        for nxt in grid.open_neighbors(cur):
            if nxt not in parent:
                parent[nxt] = cur
                q.append(nxt)
    return parent, last


def _unwind(parent: Dict[Point, Point | None], end: Point) -> list[Point]:
    path = []
    cur: Point | None = end
    while cur is not None:
        path.append(cur)
        cur = parent[cur]
    path.reverse()
    return path


def shortest_path(grid: Grid, start: Point, end: Point) -> list[Point]:
    parent, _ = _bfs(grid, start)
    if end not in parent:
        return []
    return _unwind(parent, end)


def longest_path_from(grid: Grid, start: Point) -> list[Point]:
    """Path from start to the passage farthest from it."""
    parent, farthest = _bfs(grid, start)
    return _unwind(parent, farthest)


def longest_path(grid: Grid) -> list[Point]:
    """Longest shortest-path in the maze (its diameter, for a perfect maze)."""
    first = next(grid.passages(), None)
    if first is None:
        raise MazeGenerationError("Grid has no passages")
    _, a = _bfs(grid, first)
    return longest_path_from(grid, a)


def solve(grid: Grid, start: Point | None = None, end: Point | None = None) -> list[Point]:
    if end is not None:
        if start is None:
            raise ValueError("An end point needs a start point")
        return shortest_path(grid, start, end)
    if start is not None:
        return longest_path_from(grid, start)
    return longest_path(grid)


def directions_along(path: Sequence[Point]) -> list[Direction]:
    """Directions that walk a path of adjacent points, in order."""
    by_delta = {d.delta: d for d in Direction}
    dirs = []
    for a, b in zip(path, path[1:]):
        delta = (b.x - a.x, b.y - a.y)
        if delta not in by_delta:
            raise ValueError(f"Points {a} and {b} are not adjacent")
        dirs.append(by_delta[delta])
    return dirs
