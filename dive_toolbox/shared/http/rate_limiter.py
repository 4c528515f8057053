"""レート制限（トークンバケット）ユーティリティ"""

import asyncio
import time
from contextvars import ContextVar
from typing import Awaitable, Callable, Optional

from ..logging.config import get_logger

logger = get_logger(__name__)

# 実行中のタスクに紐づくキャンセル要求（セットされていればトークンを発行しない）
request_cancel_event: ContextVar[Optional[asyncio.Event]] = ContextVar(
    "request_cancel_event", default=None
)


def _check_cancelled() -> None:
    event = request_cancel_event.get()
    if event is not None and event.is_set():
        logger.debug("Request cancelled before a token was issued")
        raise asyncio.CancelledError()


class TokenBucket:
    """
    トークンバケット方式のレート制限

    クォータ制限のある外部APIに対して、一定レートでトークンを補充し、
    トークンが無い場合は失敗させずに補充まで待機する。
    複数タスクで1つのインスタンスを共有すること（タスクごとに複製しない）
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            rate: 1秒あたりのトークン補充数
            burst: バケット容量（連続で発行できる最大リクエスト数）
            clock: 単調増加する時計（テスト用に差し替え可能）
            sleep: 非同期スリープ関数（テスト用に差し替え可能）
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive: {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1: {burst}")

        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep

        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

        logger.debug(f"TokenBucket initialized: rate={rate:.2f}/s, burst={burst}")

    @property
    def interval(self) -> float:
        """トークン1つ分の補充間隔（秒）"""
        return 1.0 / self.rate

    @property
    def available_tokens(self) -> float:
        """現時点で利用可能なトークン数"""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """
        トークンを1つ取得

        バケットが空の場合は、次のトークンが補充されるまで待機する。
        ロックを保持したまま待機するため、待機中のタスクは到着順に処理される。
        request_cancel_event がセットされている場合はトークンを消費せずに
        CancelledError を送出する（待機後にも確認する）

        Raises:
            asyncio.CancelledError: トークン発行前にキャンセルが要求された場合
        """
        async with self._get_lock():
            _check_cancelled()
            self._refill()

            if self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.rate
                logger.debug(f"Rate limiting: waiting {wait_time:.3f}s for a token")
                await self._sleep(wait_time)
                _check_cancelled()
                self._refill()
                # 時計の丸め誤差で僅かに足りない場合も1トークン分は経過済み
                self._tokens = max(self._tokens, 1.0)

            self._tokens -= 1.0

    def drain(self) -> None:
        """バケットを空にする（次の取得は補充を待つ）"""
        self._refill()
        self._tokens = 0.0

    def reset(self) -> None:
        """バケットを満タンに戻す"""
        self._tokens = float(self.burst)
        self._updated_at = self._clock()
        logger.debug("TokenBucket reset")

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    def _get_lock(self) -> asyncio.Lock:
        # イベントループごとに生成する
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock
