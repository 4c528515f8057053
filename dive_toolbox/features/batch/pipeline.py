"""位置情報エンリッチメント・パイプライン"""

import asyncio
import time
from collections import deque
from typing import AsyncIterator, Iterable, Optional, Sequence

from ...shared.exceptions.errors import PipelineError
from ...shared.http.rate_limiter import request_cancel_event
from ...shared.logging.config import get_logger
from ..geocoding.providers.cache_geocoder import CacheGeocoder
from ..geocoding.services.location_overrides import LocationOverride, apply_overrides
from ..lightroom.builders.metadata_record_builder import MetadataRecordBuilder
from ..lightroom.domain.models import DiveEntry
from ..lightroom.renderers.lrtemplate_renderer import LrTemplateRenderer
from .domain.models import PipelineResult, PipelineSummary

logger = get_logger(__name__)


class EnrichmentPipeline:
    """
    ダイブエントリを 地名解決 -> レコード生成 -> レンダリング の順に処理する

    - 結果は遅延シーケンスとして1件ずつ返す
    - エントリ単位の失敗は結果として返し、処理全体は止めない
    - 同時に実行する地名解決は concurrency 件まで
    - 完了順に関係なく、結果は入力順で返す
    """

    def __init__(
        self,
        resolver: CacheGeocoder,
        builder: Optional[MetadataRecordBuilder] = None,
        renderer: Optional[LrTemplateRenderer] = None,
        concurrency: int = 4,
        overrides: Sequence[LocationOverride] = (),
        grace_period: float = 5.0,
    ) -> None:
        """
        Args:
            resolver: キャッシュ付きジオコーダー
            builder: メタデータレコードのビルダー
            renderer: プリセットのレンダラー
            concurrency: 同時に実行する地名解決の最大数
            overrides: 位置情報の上書き設定
            grace_period: キャンセル時に実行中の処理を待つ猶予時間（秒）
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1: {concurrency}")

        self.resolver = resolver
        self.builder = builder or MetadataRecordBuilder()
        self.renderer = renderer or LrTemplateRenderer()
        self.concurrency = concurrency
        self.overrides = list(overrides)
        self.grace_period = grace_period

        self._cancel_event = asyncio.Event()
        self._cancel_deadline: Optional[float] = None

        logger.info(
            f"EnrichmentPipeline initialized: concurrency={concurrency}, "
            f"overrides={len(self.overrides)}"
        )

    @property
    def cancelled(self) -> bool:
        """キャンセルが要求されたか"""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """
        キャンセルを要求

        新しいエントリの処理は開始せず、実行中の処理は猶予時間まで待ってから破棄する。
        イベントループのスレッドから呼び出すこと
        """
        if self.cancelled:
            return

        self._cancel_deadline = time.monotonic() + self.grace_period
        self._cancel_event.set()
        logger.warning(f"Pipeline cancellation requested (grace period {self.grace_period}s)")

    async def run(self, entries: Iterable[DiveEntry]) -> AsyncIterator[PipelineResult]:
        """
        ダイブエントリを処理し、結果を入力順に返す

        キャッシュはこの実行の間だけ開かれ、終了時（中断時を含む）にフラッシュして閉じる

        Args:
            entries: ダイブエントリのシーケンス

        Yields:
            PipelineResult: エントリごとの処理結果

        Raises:
            CacheUnavailable: 開始時にキャッシュを開けない場合
        """
        cache = self.resolver.cache
        cache.open()

        pending: deque[tuple[int, asyncio.Task[PipelineResult]]] = deque()
        source = iter(enumerate(entries))
        exhausted = False
        cancel_waiter = asyncio.ensure_future(self._cancel_event.wait())

        try:
            while True:
                # 実行中の数が上限に達するまで新しいエントリを投入
                while not exhausted and not self.cancelled and len(pending) < self.concurrency:
                    item = next(source, None)
                    if item is None:
                        exhausted = True
                        break
                    index, entry = item
                    pending.append((index, asyncio.create_task(self._process(index, entry))))

                if not pending:
                    break

                index, task = pending[0]

                if not self.cancelled:
                    await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)

                if not task.done():
                    # キャンセル要求後は猶予時間まで待つ
                    remaining = max(0.0, (self._cancel_deadline or 0.0) - time.monotonic())
                    await asyncio.wait({task}, timeout=remaining)
                    if not task.done():
                        logger.warning(
                            f"Grace period expired, abandoning {len(pending)} in-flight entries"
                        )
                        break

                pending.popleft()
                if task.cancelled():
                    # トークン待ちの間にキャンセルされ、リクエストを発行しなかった
                    logger.debug(f"Dive entry at index {index} was cancelled before geocoding")
                    continue
                yield task.result()

            if self.cancelled:
                logger.warning("Pipeline stopped before all entries were processed")

        finally:
            cancel_waiter.cancel()
            for _, task in pending:
                task.cancel()
            await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
            cache.close()

    async def collect(self, entries: Iterable[DiveEntry]) -> list[PipelineResult]:
        """すべての結果をリストとして取得"""
        return [result async for result in self.run(entries)]

    def summarize(self, results: Iterable[PipelineResult]) -> PipelineSummary:
        """
        処理結果のサマリーを作成

        Args:
            results: 処理結果

        Returns:
            PipelineSummary: 成功・失敗数とキャッシュ統計
        """
        return PipelineSummary.from_results(results, self.resolver.get_cache_stats())

    async def _process(self, index: int, entry: DiveEntry) -> PipelineResult:
        """エントリ1件を処理（エントリ単位のエラーは結果に格納する）"""
        # キャンセル後はこのタスクで新しいジオコーディングリクエストを発行しない
        request_cancel_event.set(self._cancel_event)

        try:
            coordinate = self.builder.validate(entry)
            place = await self.resolver.resolve(coordinate)
            place = apply_overrides(coordinate, place, self.overrides)
            record = self.builder.build(entry, place)
            artifact = self.renderer.render(record)
        except PipelineError as e:
            logger.warning(f"Dive entry {entry.source_id!r} failed ({type(e).__name__}): {e}")
            return PipelineResult(index=index, entry=entry, error=e)

        logger.debug(f"Dive entry {entry.source_id!r} rendered as preset {record.id}")

        return PipelineResult(index=index, entry=entry, record=record, artifact=artifact)
