"""Debounce bursts of store change notifications into a single callback.

ストアは1件の書き込みでも複数回の変更通知を出すことがあるため、そのたびに
全件を読み直すと無駄が大きい。最後の通知から一定時間（既定 150ms）新しい
通知が来なかった時点で、1回だけコールバックを呼ぶ。
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from .config import settings
from .logging import logger


class ChangeCoalescer:
    """Fire `callback` once after `window_seconds` of quiet.

    - `notify()` は待機中のタイマーを破棄して新しく張り直す（呼び出し側は待たない）
    - コールバックはタイマースレッドで実行され、例外はログに記録し、タイマースレッドへは伝播させない
    - `close()` 以降の `notify()` は何もしない
    """

    def __init__(
        self,
        callback: Callable[[], None],
        window_seconds: float | None = None,
        *,
        name: str = "store_changes",
    ) -> None:
        self._callback = callback
        self._window = (
            settings.refresh_debounce_seconds if window_seconds is None else float(window_seconds)
        )
        if self._window < 0:
            raise ValueError("window_seconds must be >= 0")
        self._name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        # タイマー発火と cancel/notify が競合したとき、古いタイマーを識別するための世代番号
        self._generation = 0
        self._closed = False

    @property
    def window_seconds(self) -> float:
        return self._window

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def notify(self) -> None:
        """Record one change event and restart the quiet window."""

        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self._window, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Drop a pending firing, if any."""

        with self._lock:
            self._cancel_locked()

    def close(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._closed = True

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._timer = None
        logger.info("coalescer_fired", name=self._name, window_ms=int(self._window * 1000))
        try:
            self._callback()
        except Exception as exc:
            logger.error(
                "coalescer_callback_failed",
                name=self._name,
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
