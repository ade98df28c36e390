from __future__ import annotations

import argparse
import logging
import sched
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

from config import settings
from db import open_repo
from level import Level, MoveOutcome, build_levels, level_sizes
from logger_config import configure_logging
from maze import Direction, Generator, Point
from visibility import Tag

logger = logging.getLogger(__name__)

REVEAL_DELAY_SECONDS = 3.0


class AdvancePolicy(Enum):
    IMMEDIATE = "immediate"
    REVEAL = "reveal"


class Phase(Enum):
    PLAYING = "playing"
    TRANSITIONING = "transitioning"
    GAME_OVER = "game_over"


class EventKind(Enum):
    ATTEMPTS_CHANGED = "attempts_changed"
    LEVEL_COMPLETE = "level_complete"
    LEVEL_CHANGED = "level_changed"
    GAME_OVER = "game_over"


class PhaseError(RuntimeError):
    """Raised when a controller operation is called in the wrong phase."""


class TimerArmedError(RuntimeError):
    """Raised when arming a reveal timer that is already pending."""


@dataclass(frozen=True)
class GameEvent:
    kind: EventKind
    level: int  # 1-based
    attempts: int | None = None
    reason: str | None = None
    summary: dict[int, int] | None = None


@dataclass(frozen=True)
class Command:
    """
    Normalized command object consumed by the controller.
    """

    verb: str
    args: list[str] = field(default_factory=list)


@dataclass
class GameView:
    """
    UI-agnostic state projection returned by the controller.
    """

    level: int
    level_count: int
    attempts: int
    phase: str
    pos: dict[str, int]
    step_count: int
    max_steps: int
    is_revealed: bool

    @property
    def is_game_over(self) -> bool:
        return self.phase == Phase.GAME_OVER.value


@dataclass
class GameOutput:
    """
    Wrapper for state + events + user-facing messages from controller commands.
    """

    view: GameView
    events: list[GameEvent] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    should_quit: bool = False


class RevealTimer:
    """Single-shot delayed callback on a sched.scheduler. At most one pending at a time."""

    def __init__(self, scheduler: sched.scheduler):
        self._scheduler = scheduler
        self._event: Any = None
        self._callback: Callable[[], None] | None = None

    @property
    def armed(self) -> bool:
        return self._event is not None

    @property
    def fires_at(self) -> float | None:
        return self._event.time if self._event is not None else None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        if self._event is not None:
            raise TimerArmedError("Reveal timer is already armed")
        self._callback = callback
        self._event = self._scheduler.enter(delay, 1, self.fire)

    def disarm(self) -> bool:
        if self._event is None:
            return False
        self._scheduler.cancel(self._event)
        self._event = None
        self._callback = None
        return True

    def fire(self) -> None:
        if self._event is None:
            return
        callback = self._callback
        # The scheduler has already dequeued the event when it calls us; a
        # manual fire must take it off the queue itself.
        if self._event in self._scheduler.queue:
            self._scheduler.cancel(self._event)
        self._event = None
        self._callback = None
        callback()


class ProgressionController:
    def __init__(
        self,
        levels: Sequence[Level],
        *,
        policy: AdvancePolicy = AdvancePolicy.REVEAL,
        reveal_delay: float = REVEAL_DELAY_SECONDS,
        scheduler: sched.scheduler | None = None,
    ):
        if not levels:
            raise ValueError("At least one level is required")
        self.levels = list(levels)
        self.policy = AdvancePolicy(policy)
        self.reveal_delay = reveal_delay
        self.scheduler = scheduler or sched.scheduler(time.monotonic, time.sleep)
        self.timer = RevealTimer(self.scheduler)
        self.active_index = 0
        self.phase = Phase.PLAYING
        self.attempts = {index: 1 for index in range(len(self.levels))}
        self._outbox: list[GameEvent] = []

    @property
    def level_count(self) -> int:
        return len(self.levels)

    @property
    def active_level(self) -> Level:
        return self.levels[self.active_index]

    def current_level_index(self) -> int:
        return self.active_index

    def attempts_snapshot(self) -> dict[int, int]:
        return dict(self.attempts)

    # Operations. Each returns the events it produced, in emission order.

    def move(self, direction: Direction) -> list[GameEvent]:
        self._require_playing("move")
        index = self.active_index
        result = self.active_level.move(direction)
        if result.outcome is MoveOutcome.LEVEL_COMPLETE:
            self._complete(index)
        elif result.outcome is MoveOutcome.STEPS_EXHAUSTED:
            self._exhausted(index)
        return self._drain()

    def reset_active_level(self) -> list[GameEvent]:
        self._require_playing("reset")
        self.active_level.reset()
        self._increment_attempts(self.active_index, reason="requested")
        return self._drain()

    def skip_level(self) -> list[GameEvent]:
        self._require_playing("skip")
        logger.info("Skipping level %d", self.active_index + 1)
        self._complete(self.active_index)
        return self._drain()

    def on_level_complete(self, index: int) -> list[GameEvent]:
        self._require_playing("complete a level")
        self._complete(index)
        return self._drain()

    def on_level_step_exhausted(self, index: int) -> list[GameEvent]:
        self._require_playing("count an exhausted attempt")
        self._exhausted(index)
        return self._drain()

    def poll(self, blocking: bool = False) -> list[GameEvent]:
        """Run scheduler events that are due (or wait for them) and return what they produced."""
        self.scheduler.run(blocking=blocking)
        return self._drain()

    def close(self) -> None:
        self.timer.disarm()

    # Internals

    def _require_playing(self, action: str) -> None:
        if self.phase is not Phase.PLAYING:
            raise PhaseError(f"Cannot {action} while {self.phase.value}")

    def _check_active(self, index: int) -> None:
        if index != self.active_index:
            raise IndexError(f"Level {index} is not the active level ({self.active_index})")

    def _emit(self, event: GameEvent) -> None:
        self._outbox.append(event)

    def _drain(self) -> list[GameEvent]:
        events, self._outbox = self._outbox, []
        return events

    def _increment_attempts(self, index: int, reason: str) -> None:
        self.attempts[index] += 1
        logger.debug("Level %d attempt %d (%s)", index + 1, self.attempts[index], reason)
        self._emit(GameEvent(EventKind.ATTEMPTS_CHANGED, level=index + 1, attempts=self.attempts[index], reason=reason))

    def _exhausted(self, index: int) -> None:
        self._check_active(index)
        self._increment_attempts(index, reason="exhausted")

    def _complete(self, index: int) -> None:
        self._check_active(index)
        logger.info("Level %d complete after %d attempt(s)", index + 1, self.attempts[index])
        self._emit(GameEvent(EventKind.LEVEL_COMPLETE, level=index + 1, attempts=self.attempts[index]))
        if self.policy is AdvancePolicy.IMMEDIATE:
            self._advance()
            return
        self.active_level.reveal()
        self.phase = Phase.TRANSITIONING
        self.timer.arm(self.reveal_delay, self._advance)

    def _advance(self) -> None:
        nxt = self.active_index + 1
        if nxt >= self.level_count:
            self.phase = Phase.GAME_OVER
            logger.info("Game over: %d total attempts", sum(self.attempts.values()))
            self._emit(GameEvent(EventKind.GAME_OVER, level=self.level_count, summary=self.attempts_snapshot()))
            return
        self.active_index = nxt
        self.phase = Phase.PLAYING
        logger.info("Entering level %d of %d", nxt + 1, self.level_count)
        self._emit(GameEvent(EventKind.LEVEL_CHANGED, level=nxt + 1, attempts=self.attempts[nxt]))

    # Command surface

    def view(self) -> GameView:
        level = self.active_level
        return GameView(
            level=self.active_index + 1,
            level_count=self.level_count,
            attempts=self.attempts[self.active_index],
            phase=self.phase.value,
            pos={"x": level.position.x, "y": level.position.y},
            step_count=level.step_count,
            max_steps=level.max_steps,
            is_revealed=level.is_revealed,
        )

    def _output(self, events: list[GameEvent], messages: list[str] | None = None) -> GameOutput:
        messages = list(messages or [])
        messages.extend(_describe(event, self.level_count) for event in events)
        return GameOutput(view=self.view(), events=events, messages=messages)

    def wait(self) -> GameOutput:
        """Block until pending transitions have fired."""
        return self._output(self.poll(blocking=True))

    def handle(self, command: Command) -> GameOutput:
        verb = (command.verb or "").strip().lower()
        args = command.args or []

        if verb == "quit":
            out = self._output([])
            out.should_quit = True
            return out

        if verb == "look":
            return self._output([])

        if verb in {"reset", "skip", "move", "go", "n", "s", "e", "w"} and self.phase is not Phase.PLAYING:
            if self.phase is Phase.GAME_OVER:
                return self._output([], ["The game is over."])
            return self._output([], ["Hold on, the maze is being revealed."])

        if verb == "reset":
            return self._output(self.reset_active_level())

        if verb == "skip":
            return self._output(self.skip_level())

        if verb in {"n", "s", "e", "w"}:
            direction = _direction_from_token(verb)
        elif verb in {"move", "go"}:
            direction = _direction_from_token(args[0] if args else None)
        else:
            return self._output([], ["Unknown command."])

        if direction is None:
            return self._output([], ["Invalid direction."])

        return self._output(self.move(direction))


def _direction_from_token(token: str | None) -> Direction | None:
    if token is None:
        return None
    t = token.strip().upper()
    t = {"NORTH": "N", "SOUTH": "S", "EAST": "E", "WEST": "W", "UP": "N", "DOWN": "S", "RIGHT": "E", "LEFT": "W"}.get(t, t)
    return Direction.__members__.get(t)


def _describe(event: GameEvent, level_count: int) -> str:
    if event.kind is EventKind.ATTEMPTS_CHANGED:
        if event.reason == "exhausted":
            return f"Out of steps. Reset! Attempt {event.attempts}."
        return f"Reset. Attempt {event.attempts}."
    if event.kind is EventKind.LEVEL_COMPLETE:
        return f"Maze {event.level} complete!"
    if event.kind is EventKind.LEVEL_CHANGED:
        return f"Level {event.level} of {level_count}"
    return "~ Game Over ~"


# ---------------------------------------------------------------------------
# Terminal front end
# ---------------------------------------------------------------------------

GLYPHS = {
    Tag.WANDERER: "@",
    Tag.WALL: "#",
    Tag.PASSAGE: ".",
    Tag.START: "s",
    Tag.END: "e",
    Tag.SOLVED_PATH: "*",
}

KEYMAP = {
    "w": "N", "k": "N",
    "s": "S", "j": "S",
    "d": "E", "l": "E",
    "a": "W", "h": "W",
}

HELP_TEXT = """\
Complete each maze with minimal visibility, making no wrong turns.

The Wanderer is sent back to the beginning whenever the minimum number of
steps to complete the maze has been reached without making it to the end.

Each attempt is tallied.

Controls
  Movement             wasd / hjkl (several keys per line are fine)
  Reset Current Level  r
  Skip Level           N
  Help                 ?
  Quit                 q"""


def parse_line(text: str) -> list[Command]:
    """Decode one line of terminal input into commands."""
    line = text.strip()
    if not line:
        return []
    if line in {"q", "quit", "exit"}:
        return [Command(verb="quit")]
    if line in {"r", "reset"}:
        return [Command(verb="reset")]
    if line in {"N", "skip"}:
        return [Command(verb="skip")]
    if all(ch in KEYMAP for ch in line):
        return [Command(verb="move", args=[KEYMAP[ch]]) for ch in line]
    parts = line.split()
    return [Command(verb=parts[0], args=parts[1:])]


def render_map(level: Level) -> str:
    seen = level.visible_cells()
    lines = []
    for y in range(level.height):
        row = []
        for x in range(level.width):
            tag = seen.get(Point(x=x, y=y))
            row.append(GLYPHS[tag] if tag is not None else " ")
        lines.append("".join(row).rstrip())
    return "\n".join(lines)


def status_line(view: GameView) -> str:
    title = "~ Game Over ~" if view.is_game_over else f"Level {view.level} of {view.level_count}"
    return f"{title}    Attempts: {view.attempts}"


def summary_text(attempts: dict[int, int]) -> str:
    lines = ["Attempts", ""]
    for index in sorted(attempts):
        lines.append(f" Maze {index + 1}: {attempts[index]}")
    lines.extend(["", f" Total: {sum(attempts.values())}"])
    return "\n".join(lines)


def run(
    controller: ProgressionController,
    *,
    read: Callable[[str], str] = input,
    write: Callable[[str], Any] = print,
) -> dict[int, int] | None:
    """Play until game over (returns the attempts) or quit/end of input (returns None)."""
    write(HELP_TEXT)
    write("")
    write(status_line(controller.view()))
    write(render_map(controller.active_level))
    while controller.phase is not Phase.GAME_OVER:
        try:
            line = read("> ")
        except EOFError:
            return None
        if line.strip() == "?":
            write(HELP_TEXT)
            continue

        for command in parse_line(line):
            out = controller.handle(command)
            for message in out.messages:
                write(message)
            if out.should_quit:
                return None
            if controller.phase is Phase.TRANSITIONING:
                write(render_map(controller.active_level))
                out = controller.wait()
                for message in out.messages:
                    write(message)
            if controller.phase is not Phase.PLAYING or out.events:
                # Remaining keys on this line belonged to the previous state.
                break

        if controller.phase is not Phase.GAME_OVER:
            write(status_line(controller.view()))
            write(render_map(controller.active_level))

    attempts = controller.attempts_snapshot()
    write(summary_text(attempts))
    return attempts


def _parse_args(argv: Sequence[str] | None):
    parser = argparse.ArgumentParser(description="Wander through dimly lit mazes.")
    parser.add_argument("--generator", choices=[g.value for g in Generator], default=settings.GENERATOR.value)
    parser.add_argument("--levels", type=int, default=settings.LEVEL_COUNT, help="number of mazes to play")
    parser.add_argument("--seed", type=int, default=settings.SEED)
    parser.add_argument("--policy", choices=[p.value for p in AdvancePolicy], default=settings.ADVANCE_POLICY)
    parser.add_argument("--reveal-delay", type=float, default=settings.REVEAL_DELAY_SECONDS)
    parser.add_argument("--db", default=settings.RESULTS_DB, help="results ledger (.db for SQLite, else JSON)")
    parser.add_argument("--player", default=settings.PLAYER)
    parser.add_argument("--scores", action="store_true", help="print the best sessions and exit")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=settings.LOG_FILE)
    args = parser.parse_args(argv)
    if args.levels < 1:
        parser.error("--levels must be at least 1")
    if args.reveal_delay < 0:
        parser.error("--reveal-delay must not be negative")
    return args


def _close_repo(repo) -> None:
    if repo is not None and hasattr(repo, "close"):
        repo.close()


def _print_scores(repo, generator: str) -> None:
    for rank, session in enumerate(repo.top_sessions(generator=generator, limit=10), start=1):
        player = repo.get_player(session["player_id"]) or {"handle": "?"}
        print(f"{rank:2}. {player['handle']:<16} {session['total_attempts']:4} attempts  {session['created_at']}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    if args.scores and not args.db:
        print("No results ledger configured (use --db).")
        return 1

    repo = open_repo(args.db) if args.db else None
    try:
        if args.scores:
            _print_scores(repo, args.generator)
            return 0

        generator = Generator(args.generator)
        logger.info("Generating %d mazes with %s (seed=%s)", args.levels, generator.title, args.seed)
        levels = build_levels(level_sizes(args.levels), generator, seed=args.seed)
        controller = ProgressionController(
            levels,
            policy=AdvancePolicy(args.policy),
            reveal_delay=args.reveal_delay,
        )
        try:
            attempts = run(controller)
        except KeyboardInterrupt:
            return 130
        finally:
            controller.close()

        if attempts is not None and repo is not None:
            player = repo.get_or_create_player(args.player)
            repo.record_session(player_id=player["id"], generator=generator.value, attempts=attempts)
            logger.info("Recorded session for %s", args.player)
        return 0
    finally:
        _close_repo(repo)


if __name__ == "__main__":
    sys.exit(main())
