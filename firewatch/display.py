"""Status display for Fire Watch.

The node has no screen of its own; the "display" is the text block shown by
the web status dashboard. render() is called from the control cycle and the
lines are read back by Flask request threads.
"""

import threading
from datetime import datetime
from typing import Optional, Sequence, Tuple


class WebDisplay:
    """Holds the last rendered display lines for the status API."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lines: Tuple[str, ...] = ()
        self._rendered_at: Optional[datetime] = None

    def render(self, lines: Sequence[str]) -> None:
        with self._lock:
            self._lines = tuple(lines)
            self._rendered_at = datetime.now()

    @property
    def lines(self) -> Tuple[str, ...]:
        with self._lock:
            return self._lines

    @property
    def rendered_at(self) -> Optional[datetime]:
        with self._lock:
            return self._rendered_at
