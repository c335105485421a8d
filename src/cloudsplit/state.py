"""Per-chat-user state kept in memory between messages."""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional

from cloudsplit.services.authz import Viewer
from cloudsplit.services.payments import PaidAmountEditor


class UserStateManager:
    def __init__(self) -> None:
        self._importing: dict[int, bool] = {}
        self._editing: dict[int, str] = {}
        self._editors: dict[int, PaidAmountEditor] = {}

    def set_importing(self, tg_id: int) -> None:
        self._editing.pop(tg_id, None)
        self._importing[tg_id] = True

    def is_importing(self, tg_id: int) -> bool:
        return self._importing.get(tg_id, False)

    def clear_importing(self, tg_id: int) -> None:
        self._importing.pop(tg_id, None)

    def set_editing(self, tg_id: int, bill_id: str) -> None:
        self._importing.pop(tg_id, None)
        self._editing[tg_id] = bill_id

    def get_editing(self, tg_id: int) -> Optional[str]:
        return self._editing.get(tg_id)

    def clear_editing(self, tg_id: int) -> None:
        self._editing.pop(tg_id, None)

    def awaits_payload(self, tg_id: int) -> bool:
        return self.is_importing(tg_id) or tg_id in self._editing

    def editor(
        self,
        tg_id: int,
        viewer: Viewer,
        committed: Optional[Mapping[str, Decimal]] = None,
    ) -> PaidAmountEditor:
        """Editor for ``tg_id``, rebuilt when the viewer changed or fresh amounts are passed."""
        current = self._editors.get(tg_id)
        if current is None or current.viewer != viewer or committed is not None:
            current = PaidAmountEditor(viewer, committed)
            self._editors[tg_id] = current
        return current

    def clear_user(self, tg_id: int) -> None:
        self._importing.pop(tg_id, None)
        self._editing.pop(tg_id, None)
        self._editors.pop(tg_id, None)


state = UserStateManager()
