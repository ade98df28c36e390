from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Sequence

import maze
from maze import Direction, Generator, Grid, MazeGenerationError, Point
from visibility import Tag, Visibility, visible_cells

logger = logging.getLogger(__name__)


class LevelStateError(RuntimeError):
    """Raised when a level operation is called in a state that does not allow it."""


class MoveOutcome(Enum):
    BLOCKED = "blocked"
    MOVED = "moved"
    LEVEL_COMPLETE = "level_complete"
    STEPS_EXHAUSTED = "steps_exhausted"


@dataclass(frozen=True)
class MoveResult:
    outcome: MoveOutcome
    position: Point
    step_count: int

    @property
    def redraw(self) -> bool:
        return self.outcome is not MoveOutcome.BLOCKED


class Level:
    """One maze and the wanderer walking it.

    The wanderer has max_steps moves, the length of the solution, to reach
    the end. Running out sends them back to the start. Once revealed, the
    level accepts no more movement.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.grid: Grid | None = None
        self.solution: tuple[Point, ...] = ()
        self.start = Point(0, 0)
        self.end = Point(0, 0)
        self.position = Point(0, 0)
        self.max_steps = 0
        self.step_count = 0
        self.visibility = Visibility.FOGGED

    @classmethod
    def from_grid(cls, grid: Grid, solution: Sequence[Point]) -> "Level":
        level = cls(grid.width, grid.height)
        level.load(grid, solution)
        return level

    @property
    def is_generated(self) -> bool:
        return self.grid is not None

    @property
    def is_revealed(self) -> bool:
        return self.visibility is Visibility.REVEALED

    def generate(
        self,
        algorithm: Generator = Generator.RECURSIVE_BACKTRACKING,
        *,
        start: Point | None = None,
        rng: random.Random | None = None,
    ) -> None:
        grid = maze.generate(self.width, self.height, algorithm, start, rng=rng)
        self.load(grid, maze.solve(grid, start))
        logger.debug(
            "Generated %dx%d maze with %s: start=%s end=%s max_steps=%d",
            self.width, self.height, Generator(algorithm).value, self.start, self.end, self.max_steps,
        )

    def load(self, grid: Grid, solution: Sequence[Point]) -> None:
        if (grid.width, grid.height) != (self.width, self.height):
            raise ValueError(
                f"Grid is {grid.width}x{grid.height}, level expects {self.width}x{self.height}"
            )
        if len(solution) < 2:
            raise MazeGenerationError("Solution must contain at least one step")
        for point in solution:
            if not grid.is_passage(point):
                raise MazeGenerationError(f"Solution leaves the passages at {point}")
        try:
            maze.directions_along(solution)
        except ValueError as e:
            raise MazeGenerationError(f"Solution is not a walk: {e}") from e
        if len(set(solution)) != len(solution):
            raise MazeGenerationError("Solution revisits a cell")

        self.grid = grid
        self.solution = tuple(solution)
        self.start = self.solution[0]
        self.end = self.solution[-1]
        self.max_steps = len(self.solution) - 1
        self.position = self.start
        self.step_count = 0
        self.visibility = Visibility.FOGGED

    def move(self, direction: Direction) -> MoveResult:
        if self.grid is None:
            raise LevelStateError("Level has not been generated")
        if self.is_revealed:
            raise LevelStateError("Level is revealed and no longer accepts movement")

        candidate = self.grid.next_point(self.position, direction)
        if candidate is None or not self.grid.is_passage(candidate):
            return MoveResult(MoveOutcome.BLOCKED, self.position, self.step_count)

        self.position = candidate
        self.step_count += 1

        if self.position == self.end:
            return MoveResult(MoveOutcome.LEVEL_COMPLETE, self.position, self.step_count)
        if self.step_count == self.max_steps:
            logger.debug("Out of steps at %s after %d moves", self.position, self.step_count)
            self.reset()
            return MoveResult(MoveOutcome.STEPS_EXHAUSTED, self.position, self.step_count)
        return MoveResult(MoveOutcome.MOVED, self.position, self.step_count)

    def reset(self) -> None:
        # A revealed maze is being shown off; leave the wanderer on the end.
        if self.is_revealed:
            return
        self.position = self.start
        self.step_count = 0

    def reveal(self) -> None:
        if self.grid is None:
            raise LevelStateError("Level has not been generated")
        self.visibility = Visibility.REVEALED

    def visible_cells(self) -> Dict[Point, Tag]:
        if self.grid is None:
            raise LevelStateError("Level has not been generated")
        return visible_cells(
            self.grid,
            self.position,
            self.visibility,
            start=self.start,
            end=self.end,
            solution=self.solution,
        )


def level_sizes(count: int) -> list[tuple[int, int]]:
    """Widths grow by five per level; heights are half the width, rounded up."""
    if count < 1:
        raise ValueError(f"Need at least one level, got {count}")
    sizes = []
    for i in range(count):
        width = 5 * (i + 2)
        sizes.append((width, (width + 1) // 2))
    return sizes


def build_levels(
    sizes: Sequence[tuple[int, int]],
    algorithm: Generator = Generator.RECURSIVE_BACKTRACKING,
    *,
    seed: int | None = None,
) -> list[Level]:
    """Generate one level per size, each starting where the previous one ends."""
    rng = random.Random(seed)
    first_width, first_height = sizes[0]
    start = maze.random_room(first_width, first_height, rng)
    levels = []
    for width, height in sizes:
        level = Level(width, height)
        level.generate(algorithm, start=start, rng=rng)
        levels.append(level)
        start = level.end
    return levels
