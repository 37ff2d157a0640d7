"""
View model handed to every display consumer.

Carries the quote's status explicitly instead of a shared "cancelled"
flag that each display routine reads on its own.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..engine.models import QuoteStatus
from .state_machine import Action, LOCKED_STATUSES, permitted_actions


LOCKED_NOTICE = "此報價單已完成確認並封存，僅供查看。"
INVALID_LINK_NOTICE = "此連結已失效或資料讀取失敗。"


def cancelled_banner(cancelled_at: Optional[datetime] = None, reason: Optional[str] = None) -> str:
    text = "⚠️ 本報價單已作廢"
    if cancelled_at:
        text += f"（{cancelled_at:%Y/%m/%d %H:%M}）"
    if reason:
        text += f"，原因：{reason}"
    return text


@dataclass
class ViewModel:
    """Everything a page needs to decide what to render."""
    status: QuoteStatus
    admin: bool = False
    actions: frozenset = field(default_factory=frozenset)
    banner: Optional[str] = None
    notice: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    @property
    def read_only(self) -> bool:
        return Action.EDIT not in self.actions

    @property
    def cancelled(self) -> bool:
        return self.status == QuoteStatus.CANCELLED

    @property
    def can_confirm(self) -> bool:
        return Action.CONFIRM in self.actions

    @property
    def can_cancel(self) -> bool:
        return Action.CANCEL in self.actions


def build_view_model(
    status: QuoteStatus,
    admin: bool = False,
    locally_confirmed: bool = False,
    cancel_reason: Optional[str] = None,
    cancelled_at: Optional[datetime] = None,
) -> ViewModel:
    vm = ViewModel(
        status=status,
        admin=admin,
        actions=permitted_actions(status, admin=admin, locally_confirmed=locally_confirmed),
        cancel_reason=cancel_reason,
        cancelled_at=cancelled_at,
    )
    if status == QuoteStatus.CANCELLED:
        vm.banner = cancelled_banner(cancelled_at, cancel_reason)
    elif status in LOCKED_STATUSES or locally_confirmed:
        vm.notice = LOCKED_NOTICE
    return vm
