"""バッチオーケストレーター"""

import asyncio
import signal
from typing import Iterable, Optional

from ...infrastructure.config.settings import Settings
from ...shared.http.rate_limiter import TokenBucket
from ...shared.logging.config import get_logger, setup_logging
from ..geocoding.providers.base import AbstractGeocoder
from ..geocoding.providers.cache_geocoder import CacheGeocoder
from ..geocoding.providers.google_maps_geocoder import GoogleMapsGeocoder
from ..geocoding.services.location_overrides import LocationOverride, load_overrides
from ..lightroom.builders.metadata_record_builder import MetadataRecordBuilder
from ..lightroom.domain.models import DiveEntry
from ..lightroom.exporters.preset_writer import PresetWriter
from ..lightroom.renderers.lrtemplate_renderer import LrTemplateRenderer
from ..storage.repositories.geocode_cache_repository import GeocodeCacheRepository
from .domain.models import ExportResult
from .jobs.lightroom_export_job import LightroomExportJob
from .pipeline import EnrichmentPipeline

logger = get_logger(__name__)


class BatchOrchestrator:
    """
    バッチオーケストレーター

    各Featureを統合し、依存性注入を行う
    """

    def __init__(
        self,
        settings: Settings,
        geocoder: Optional[AbstractGeocoder] = None,
        cache: Optional[GeocodeCacheRepository] = None,
    ) -> None:
        """
        Args:
            settings: アプリケーション設定
            geocoder: ジオコーダー（Noneの場合はGoogle Mapsを使用）
            cache: ジオコードキャッシュ（Noneの場合は設定のパスを使用）
        """
        self.settings = settings

        # トークンバケットはすべてのジオコーディングで共有する
        self.rate_limiter = TokenBucket(
            rate=settings.geocode_rate,
            burst=settings.geocode_burst,
        )

        self.cache = cache or GeocodeCacheRepository(settings.cache_path)
        self.geocoder = geocoder or self._create_geocoder()
        self.overrides = self._load_overrides()

        self.resolver = CacheGeocoder(
            geocoder=self.geocoder,
            cache=self.cache,
            precision=settings.coordinate_precision,
            retry_backoff=settings.effective_retry_backoff,
        )

        self.builder = MetadataRecordBuilder(title_format=settings.title_format)
        self.renderer = LrTemplateRenderer()

        logger.info("BatchOrchestrator initialized")

    def create_pipeline(self) -> EnrichmentPipeline:
        """設定に基づいてパイプラインを作成"""
        return EnrichmentPipeline(
            resolver=self.resolver,
            builder=self.builder,
            renderer=self.renderer,
            concurrency=self.settings.concurrency,
            overrides=self.overrides,
            grace_period=self.settings.grace_period,
        )

    async def export_lightroom_presets(
        self,
        entries: Iterable[DiveEntry],
        force: bool = False,
        show_progress: bool = False,
    ) -> ExportResult:
        """
        ダイブサイトをLightroomのメタデータプリセットとして書き出す

        SIGINT/SIGTERM を受け取った場合は新しいジオコーディングを止め、
        解決済みのエントリのみ書き出して終了する

        Args:
            entries: ダイブエントリ
            force: 既存のプリセットも上書きするか
            show_progress: プログレスバーを表示するか

        Returns:
            ExportResult: エクスポート結果

        Raises:
            ConfigurationError: プリセットディレクトリが設定されていない場合
            CacheUnavailable: キャッシュを開けない場合
        """
        writer = PresetWriter(self.settings.require_presets_dir())
        pipeline = self.create_pipeline()
        job = LightroomExportJob(pipeline=pipeline, writer=writer, show_progress=show_progress)

        installed = self._install_signal_handlers(pipeline)
        try:
            return await job.execute(entries, force=force)
        finally:
            self._remove_signal_handlers(installed)

    def run_lightroom_export(
        self,
        entries: Iterable[DiveEntry],
        force: bool = False,
        show_progress: bool = False,
    ) -> ExportResult:
        """
        export_lightroom_presets の同期版

        設定のログレベル・ログファイルでロギングを設定してから実行する
        """
        setup_logging(level=self.settings.log_level, log_file=self.settings.log_file)

        return asyncio.run(
            self.export_lightroom_presets(entries, force=force, show_progress=show_progress)
        )

    def _create_geocoder(self) -> GoogleMapsGeocoder:
        """
        Google Maps ジオコーダーを作成

        Raises:
            ConfigurationError: API Keyが設定されていない場合
        """
        return GoogleMapsGeocoder(
            rate_limiter=self.rate_limiter,
            api_key=self.settings.require_api_key(),
            timeout=self.settings.geocode_timeout,
            language=self.settings.geocode_language,
        )

    def _load_overrides(self) -> list[LocationOverride]:
        if self.settings.overrides_path is None:
            return []
        return load_overrides(self.settings.overrides_path)

    @staticmethod
    def _install_signal_handlers(pipeline: EnrichmentPipeline) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed = []

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, pipeline.cancel)
                installed.append(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows やメインスレッド以外では登録できない
                logger.debug(f"Signal handler for {sig.name} not installed")

        return installed

    @staticmethod
    def _remove_signal_handlers(installed: list[signal.Signals]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
