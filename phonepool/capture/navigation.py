"""
Navigation Scripts
==================

Blind UI navigation expressed as data.

A script is an ordered list of steps (tap, clear, type the tracking id,
key event), each followed by a settle delay. Scripts render to the shell
``input`` commands every provider understands through its command
endpoint. Coordinates assume a 1080x1920 portrait screen.

Scripts are looked up per (provider, package) so a provider whose layout
differs can get its own script without touching the orchestrator.

Usage:
    book = NavigationScriptBook.default()
    script = book.lookup("DuoPlus", "de.dhl.paket")
    for command, delay in script.render("00340434161234567890"):
        ...
"""

from dataclasses import dataclass
from typing import Optional, Union

DHL_PAKET_PACKAGE = "de.dhl.paket"

KEYCODE_ENTER = 66


def quote_input_text(text: str) -> str:
    """
    Quote text for ``input text`` inside a single-quoted shell word.

    Spaces become ``%s`` (the ``input`` tool's own escape) and single
    quotes are closed, escaped and reopened.
    """
    escaped = text.replace(" ", "%s").replace("'", "'\\''")
    return f"'{escaped}'"


@dataclass(frozen=True)
class Tap:
    x: int
    y: int

    def render(self, tracking_id: str) -> str:
        return f"input tap {self.x} {self.y}"


@dataclass(frozen=True)
class ClearText:
    def render(self, tracking_id: str) -> str:
        return "input text ''"


@dataclass(frozen=True)
class TypeTrackingId:
    def render(self, tracking_id: str) -> str:
        return f"input text {quote_input_text(tracking_id)}"


@dataclass(frozen=True)
class KeyEvent:
    code: int

    def render(self, tracking_id: str) -> str:
        return f"input keyevent {self.code}"


Action = Union[Tap, ClearText, TypeTrackingId, KeyEvent]


@dataclass(frozen=True)
class ScriptStep:
    """One action plus the delay to wait after it."""

    action: Action
    delay_seconds: float
    label: str = ""


@dataclass(frozen=True)
class NavigationScript:
    """Immutable sequence of navigation steps."""

    name: str
    steps: tuple[ScriptStep, ...]

    def render(self, tracking_id: str) -> list[tuple[str, float]]:
        """
        Render the script for a tracking id.

        Args:
            tracking_id: Tracking number to type.

        Returns:
            ``(shell command, delay after it)`` pairs in order.
        """
        return [(step.action.render(tracking_id), step.delay_seconds) for step in self.steps]

    @property
    def total_delay(self) -> float:
        return sum(step.delay_seconds for step in self.steps)


DHL_TRACKING_SCRIPT = NavigationScript(
    name="dhl-paket-tracking",
    steps=(
        ScriptStep(Tap(70, 1850), 2.0, "open tracking tab"),
        ScriptStep(Tap(540, 300), 1.0, "focus search field"),
        ScriptStep(ClearText(), 0.5, "clear search field"),
        ScriptStep(TypeTrackingId(), 1.0, "enter tracking number"),
        ScriptStep(KeyEvent(KEYCODE_ENTER), 3.0, "submit search"),
        ScriptStep(Tap(540, 500), 3.0, "open first result"),
    ),
)


class NavigationScriptBook:
    """Scripts keyed by (provider, package) with per-package defaults."""

    def __init__(self) -> None:
        self._scripts: dict[tuple[Optional[str], str], NavigationScript] = {}

    @classmethod
    def default(cls) -> "NavigationScriptBook":
        book = cls()
        book.register(DHL_TRACKING_SCRIPT, package=DHL_PAKET_PACKAGE)
        return book

    def register(
        self,
        script: NavigationScript,
        package: str,
        provider: Optional[str] = None,
    ) -> None:
        """Register a script for a package, optionally only for one provider."""
        self._scripts[(provider, package)] = script

    def lookup(self, provider: str, package: str) -> Optional[NavigationScript]:
        """Provider-specific script if any, else the package default."""
        return self._scripts.get((provider, package)) or self._scripts.get((None, package))
