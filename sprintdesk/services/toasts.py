"""Transient user-facing notices with auto-dismissal."""

import asyncio
import itertools
from typing import Dict, List, Optional

from ..config import settings
from ..core.models import Toast, ToastType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ToastCenter:
    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = settings.toast_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._toasts: List[Toast] = []
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    @property
    def toasts(self) -> List[Toast]:
        return list(self._toasts)

    def show(self, message: str, type: ToastType = ToastType.INFO) -> Toast:
        toast = Toast(id=f"toast-{next(self._ids)}", message=message, type=ToastType(type))
        self._toasts.append(toast)
        log = logger.warning if toast.type == ToastType.ERROR else logger.info
        log(f"[{toast.type.value}] {message}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the toast stays until dismissed explicitly
            return toast
        if self.ttl_seconds > 0:
            self._timers[toast.id] = loop.call_later(self.ttl_seconds, self.dismiss, toast.id)
        return toast

    def success(self, message: str) -> Toast:
        return self.show(message, ToastType.SUCCESS)

    def error(self, message: str) -> Toast:
        return self.show(message, ToastType.ERROR)

    def info(self, message: str) -> Toast:
        return self.show(message, ToastType.INFO)

    def dismiss(self, toast_id: str) -> None:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        self._toasts = [toast for toast in self._toasts if toast.id != toast_id]

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts = []

    def close(self) -> None:
        """Cancel pending timers, keeping the current toasts readable."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
