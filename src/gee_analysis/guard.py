from __future__ import annotations


class OperationInProgress(Exception):
    def __init__(self, kind: str):
        super().__init__(f"Operation '{kind}' is already running, please wait.")
        self.kind = kind


class OperationGuard:
    """Tracks in-flight operations so each kind runs at most once at a time.

    acquire() has no suspension point, so under cooperative scheduling the
    check and the claim happen atomically.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()

    def is_active(self, kind: str) -> bool:
        return kind in self._active

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)

    def acquire(self, kind: str) -> None:
        if kind in self._active:
            raise OperationInProgress(kind)
        self._active.add(kind)

    def release(self, kind: str) -> None:
        self._active.discard(kind)
