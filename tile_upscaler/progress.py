"""Single progress channel spanning every pipeline phase."""

from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

PROGRESS_PHASES: Dict[str, Tuple[int, int]] = {
    "extract": (0, 20),
    "audio": (20, 30),
    "enhance": (30, 80),
    "encode": (80, 90),
    "remux": (90, 100),
}


class ProgressReporter:
    """Map per-phase fractions onto one ``[0, 100]`` scale.

    The callback never sees a value lower than one it has already seen.
    """

    def __init__(self, callback: Optional[Callable[[float], None]] = None) -> None:
        self._callback = callback
        self.value = 0.0

    def report(self, phase: str, fraction: float) -> None:
        start, end = PROGRESS_PHASES[phase]
        fraction = min(max(float(fraction), 0.0), 1.0)
        scaled = float(round(start + fraction * (end - start)))
        if scaled < self.value:
            return
        self.value = scaled
        if self._callback is not None:
            self._callback(scaled)

    def phase(self, name: str) -> Callable[[float], None]:
        if name not in PROGRESS_PHASES:
            raise KeyError(f"unknown progress phase {name!r}")
        return lambda fraction: self.report(name, fraction)
