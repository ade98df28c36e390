import importlib
import sched

import pytest


def import_required(module_name: str):
    """
    Import a project module with a clearer failure message than ModuleNotFoundError.
    """
    try:
        return importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        pytest.fail(
            f"Required module '{module_name}.py' could not be imported. "
            f"Original error: {e}"
        )


@pytest.fixture
def maze_module():
    return import_required("maze")


@pytest.fixture
def level_module():
    return import_required("level")


@pytest.fixture
def main_module():
    return import_required("main")


@pytest.fixture
def db_module():
    return import_required("db")


# A 3x3 maze. Start (0,0), end (2,2) along the top row and down the right
# side, four steps. The left column is a dead-end branch.
SMALL_ROWS = [
    "...",
    ".#.",
    ".#.",
]


@pytest.fixture
def small_grid(maze_module):
    return maze_module.Grid.from_rows(SMALL_ROWS)


@pytest.fixture
def small_solution(maze_module):
    P = maze_module.Point
    return [P(0, 0), P(1, 0), P(2, 0), P(2, 1), P(2, 2)]


@pytest.fixture
def small_level(level_module, small_grid, small_solution):
    return level_module.Level.from_grid(small_grid, small_solution)


@pytest.fixture
def make_small_levels(level_module, maze_module):
    """Factory for n independent copies of the 3x3 level."""
    grid = maze_module.Grid.from_rows(SMALL_ROWS)
    P = maze_module.Point
    solution = [P(0, 0), P(1, 0), P(2, 0), P(2, 1), P(2, 2)]

    def make(n: int):
        return [level_module.Level.from_grid(grid, solution) for _ in range(n)]

    return make


class FakeClock:
    """Manual clock for sched.scheduler; sleeping just moves time forward."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return sched.scheduler(clock.time, clock.sleep)


@pytest.fixture
def make_controller(main_module, make_small_levels, scheduler):
    def make(n: int = 3, **kwargs):
        kwargs.setdefault("scheduler", scheduler)
        return main_module.ProgressionController(make_small_levels(n), **kwargs)

    return make



@pytest.fixture(params=["results.json", "results.db"])
def repo(request, tmp_path, db_module):
    repo = db_module.open_repo(tmp_path / request.param)
    yield repo
    if hasattr(repo, "close"):
        repo.close()
