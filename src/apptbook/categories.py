"""
Category visibility: which appointment categories the views currently show.
"""

from collections.abc import Iterable

from apptbook.models import UNCATEGORIZED
from apptbook.models import Appointment


class CategoryFilter:
    """Tracks hidden categories. Everything not hidden is shown."""

    def __init__(self, hidden: Iterable[str] = ()):
        self._hidden = {_label(c) for c in hidden}

    def is_shown(self, category: str | None) -> bool:
        return _label(category) not in self._hidden

    def shows(self, appt: Appointment) -> bool:
        return self.is_shown(appt.category)

    def hide(self, category: str | None):
        self._hidden.add(_label(category))

    def show(self, category: str | None):
        self._hidden.discard(_label(category))

    @property
    def hidden(self) -> frozenset[str]:
        return frozenset(self._hidden)


def _label(category: str | None) -> str:
    return (category or UNCATEGORIZED).strip()


def collect_categories(appts: Iterable[Appointment]) -> list[str]:
    """Sorted distinct categories of ``appts``, always including uncategorized."""
    labels = {UNCATEGORIZED}
    labels.update(a.category for a in appts if a.category)
    return sorted(labels)
