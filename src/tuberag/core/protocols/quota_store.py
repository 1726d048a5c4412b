"""QuotaStore protocol for pluggable quota persistence.

Lets the quota scheduler keep its state in sqlite (the default), a JSON
file, Redis or anything else that can hold one small record.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tuberag.core.models import QuotaState


@runtime_checkable
class QuotaStore(Protocol):
    """Protocol for quota storage backends.

    Methods are synchronous: the scheduler persists inside its critical
    section, before control returns to the caller of ``submit``.

    Example:
        class MemoryQuotaStore:
            def __init__(self) -> None:
                self.state = None

            def load(self) -> QuotaState | None:
                return self.state

            def save(self, state: QuotaState) -> None:
                self.state = state

        assert isinstance(MemoryQuotaStore(), QuotaStore)
    """

    def load(self) -> QuotaState | None:
        """Return the last saved state, or None if nothing was saved yet."""
        ...

    def save(self, state: QuotaState) -> None:
        """Durably overwrite the saved state."""
        ...
