import dataclasses
import random

import pytest

from level import Level, LevelStateError, MoveOutcome, build_levels, level_sizes
from maze import Direction, Generator, Grid, MazeGenerationError, Point, directions_along
from visibility import Visibility

N, S, E, W = Direction.N, Direction.S, Direction.E, Direction.W


def _walk(level, directions):
    return [level.move(d) for d in directions]


def _assert_invariants(level):
    assert 0 <= level.step_count <= level.max_steps
    assert level.grid.is_passage(level.position)


def test_load_sets_step_limit_from_solution(small_level):
    assert small_level.start == Point(0, 0)
    assert small_level.end == Point(2, 2)
    assert small_level.max_steps == 4
    assert small_level.position == small_level.start
    assert small_level.step_count == 0
    assert small_level.visibility is Visibility.FOGGED


def test_move_into_wall_is_a_no_op(small_level):
    small_level.move(E)
    before = (small_level.position, small_level.step_count, small_level.visibility)
    result = small_level.move(S)  # (1,1) is a wall
    assert result.outcome is MoveOutcome.BLOCKED
    assert result.redraw is False
    assert (small_level.position, small_level.step_count, small_level.visibility) == before


def test_move_off_grid_is_a_no_op(small_level):
    result = small_level.move(N)
    assert result.outcome is MoveOutcome.BLOCKED
    assert small_level.position == Point(0, 0)
    assert small_level.step_count == 0


def test_legal_move_counts_a_step(small_level):
    result = small_level.move(E)
    assert result.outcome is MoveOutcome.MOVED
    assert result.redraw is True
    assert small_level.position == Point(1, 0)
    assert small_level.step_count == 1


def test_running_out_of_steps_resets_to_start(small_level):
    results = _walk(small_level, [E, W, S, S])
    assert [r.outcome for r in results] == [MoveOutcome.MOVED] * 3 + [MoveOutcome.STEPS_EXHAUSTED]
    assert small_level.position == small_level.start
    assert small_level.step_count == 0


def test_reaching_the_end_on_the_last_step_completes(small_level):
    results = _walk(small_level, [E, E, S, S])
    assert results[-1].outcome is MoveOutcome.LEVEL_COMPLETE
    assert all(r.outcome is not MoveOutcome.STEPS_EXHAUSTED for r in results)
    assert small_level.position == small_level.end
    assert small_level.step_count == small_level.max_steps


def test_reset_returns_to_start(small_level):
    _walk(small_level, [E, E])
    small_level.reset()
    assert small_level.position == small_level.start
    assert small_level.step_count == 0


def test_reveal_is_idempotent_and_blocks_movement(small_level):
    small_level.reveal()
    small_level.reveal()
    assert small_level.is_revealed
    with pytest.raises(LevelStateError):
        small_level.move(E)


def test_reset_after_reveal_leaves_the_wanderer(small_level):
    _walk(small_level, [E, E, S, S])
    small_level.reveal()
    small_level.reset()
    assert small_level.position == small_level.end
    assert small_level.is_revealed


def test_ungenerated_level_rejects_operations():
    level = Level(10, 5)
    assert not level.is_generated
    with pytest.raises(LevelStateError):
        level.move(E)
    with pytest.raises(LevelStateError):
        level.reveal()


def test_load_rejects_single_point_solution(small_grid):
    with pytest.raises(MazeGenerationError):
        Level.from_grid(small_grid, [Point(0, 0)])


def test_load_rejects_solution_through_walls(small_grid):
    with pytest.raises(MazeGenerationError):
        Level.from_grid(small_grid, [Point(0, 0), Point(1, 1)])


def test_load_rejects_solution_with_gaps(small_grid):
    with pytest.raises(MazeGenerationError):
        Level.from_grid(small_grid, [Point(0, 0), Point(2, 0)])


def test_load_rejects_solution_that_doubles_back(small_grid):
    with pytest.raises(MazeGenerationError):
        Level.from_grid(small_grid, [Point(0, 0), Point(1, 0), Point(0, 0)])


def test_load_rejects_mismatched_grid(small_grid, small_solution):
    with pytest.raises(ValueError):
        Level(5, 5).load(small_grid, small_solution)


def test_one_by_one_maze_is_fatal():
    with pytest.raises(MazeGenerationError):
        Level(1, 1).generate(Generator.RECURSIVE_BACKTRACKING)


@pytest.mark.parametrize("algorithm", list(Generator))
def test_generated_level_solution_reaches_end_without_exhausting(algorithm):
    level = Level(15, 8)
    level.generate(algorithm, rng=random.Random(12))
    results = _walk(level, directions_along(level.solution))
    assert results[-1].outcome is MoveOutcome.LEVEL_COMPLETE
    assert all(r.outcome is MoveOutcome.MOVED for r in results[:-1])


def test_random_walk_keeps_invariants():
    level = Level(20, 10)
    level.generate(Generator.PRIMS, rng=random.Random(3))
    rng = random.Random(4)
    for _ in range(500):
        result = level.move(rng.choice(list(Direction)))
        if result.outcome is MoveOutcome.LEVEL_COMPLETE:
            break
        _assert_invariants(level)


def test_level_sizes_grow():
    assert level_sizes(9) == [
        (10, 5), (15, 8), (20, 10), (25, 13), (30, 15), (35, 18), (40, 20), (45, 23), (50, 25),
    ]
    with pytest.raises(ValueError):
        level_sizes(0)


def test_build_levels_chains_start_to_previous_end():
    levels = build_levels(level_sizes(4), Generator.KRUSKAL, seed=21)
    assert [(lv.width, lv.height) for lv in levels] == level_sizes(4)
    for prev, nxt in zip(levels, levels[1:]):
        assert nxt.start == prev.end
    for lv in levels:
        assert lv.max_steps == len(lv.solution) - 1 >= 1


def test_build_levels_is_reproducible():
    a = build_levels(level_sizes(3), Generator.RECURSIVE_DIVISION, seed=5)
    b = build_levels(level_sizes(3), Generator.RECURSIVE_DIVISION, seed=5)
    assert [lv.grid for lv in a] == [lv.grid for lv in b]
    assert [lv.solution for lv in a] == [lv.solution for lv in b]


def test_grid_is_immutable(small_level):
    with pytest.raises(dataclasses.FrozenInstanceError):
        small_level.grid.width = 7
    assert isinstance(small_level.grid, Grid)
