"""Lightroomメタデータプリセットのエクスポートジョブ"""

import uuid
from contextlib import aclosing
from datetime import datetime
from pathlib import Path
from typing import Iterable

from tqdm import tqdm

from ....shared.exceptions.errors import ExportError, InvalidDiveEntry
from ....shared.logging.config import get_logger
from ...lightroom.builders.metadata_record_builder import record_id
from ...lightroom.domain.models import DiveEntry
from ...lightroom.exporters.preset_writer import PresetWriter
from ..domain.models import ExportResult, ExportStatus, PipelineResult, PipelineSummary
from ..pipeline import EnrichmentPipeline

logger = get_logger(__name__)


class LightroomExportJob:
    """ダイブサイトをLightroomのメタデータプリセットとして書き出すジョブ"""

    def __init__(
        self,
        pipeline: EnrichmentPipeline,
        writer: PresetWriter,
        show_progress: bool = False,
    ) -> None:
        """
        Args:
            pipeline: エンリッチメント・パイプライン
            writer: プリセットの書き出し先
            show_progress: プログレスバーを表示するか
        """
        self.pipeline = pipeline
        self.writer = writer
        self.show_progress = show_progress

        logger.info(f"LightroomExportJob initialized: {self.writer.directory}")

    async def execute(self, entries: Iterable[DiveEntry], force: bool = False) -> ExportResult:
        """
        エクスポートジョブを実行

        処理フロー:
        1. 既存のプリセットを確認
        2. 既存のプリセットがあるエントリを除外（force時は除外しない）
        3. 地名解決・レンダリング
        4. プリセットを書き出し

        Args:
            entries: ダイブエントリ
            force: 既存のプリセットも上書きするか

        Returns:
            ExportResult: エクスポート結果
        """
        run_id = f"lightroom_{uuid.uuid4().hex[:8]}"
        started_at = datetime.now()
        result = ExportResult(run_id=run_id, started_at=started_at, status=ExportStatus.RUNNING)

        logger.info(f"Starting Lightroom export job (run_id={run_id}, force={force})")

        entries = list(entries)
        result.total_entries = len(entries)

        try:
            # 1. 既存のプリセットを確認
            existing = self.writer.read_existing()

            # 2. 既存のプリセットがあるエントリを除外
            targets = [entry for entry in entries if force or not self._exists(entry, existing)]
            result.skipped_entries = len(entries) - len(targets)
            if result.skipped_entries:
                logger.info(f"Skipping {result.skipped_entries} entries with existing presets")

            # 3-4. 地名解決・レンダリングして書き出し
            results: list[PipelineResult] = []
            progress = tqdm(total=len(targets), desc="Geocoding dive sites", disable=not self.show_progress)

            try:
                async with aclosing(self.pipeline.run(targets)) as stream:
                    async for item in stream:
                        results.append(item)
                        progress.update(1)
                        self._write(item, result)
            finally:
                progress.close()

            result.summary = self.pipeline.summarize(results)
            logger.info(f"Pipeline summary: {result.summary.to_dict()}")

        except ExportError as e:
            logger.error(f"Export error: {e}")
            result.errors.append(f"ExportError: {e}")
            result.status = ExportStatus.FAILED
            return self._finish(result)

        result.status = self._status(result)
        return self._finish(result)

    def _write(self, item: PipelineResult, result: ExportResult) -> None:
        if not item.ok or item.record is None or item.artifact is None:
            result.errors.append(f"{item.error_type}: {item.error}")
            return

        path = self.writer.write(item.record, item.artifact)
        result.written.append(path)
        result.records.append(item.record)
        logger.debug(f"Exported dive site: {item.record.to_summary()}")

    def _status(self, result: ExportResult) -> ExportStatus:
        summary = result.summary or PipelineSummary()

        if self.pipeline.cancelled:
            return ExportStatus.CANCELLED
        if summary.failed == 0:
            return ExportStatus.SUCCESS
        if summary.succeeded > 0:
            return ExportStatus.PARTIAL
        return ExportStatus.FAILED

    def _finish(self, result: ExportResult) -> ExportResult:
        result.completed_at = datetime.now()
        result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

        logger.info(
            f"Lightroom export job finished: {result.status.value}, "
            f"{len(result.written)} written, {result.skipped_entries} skipped, "
            f"{len(result.errors)} errors ({result.duration_seconds:.1f}s)"
        )

        return result

    @staticmethod
    def _exists(entry: DiveEntry, existing: dict[str, Path]) -> bool:
        try:
            return record_id(entry.source_id) in existing
        except InvalidDiveEntry:
            # 識別子が不正なエントリはパイプラインでエラーとして報告する
            return False
