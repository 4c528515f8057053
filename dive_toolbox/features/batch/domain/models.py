"""バッチ処理のドメインモデル"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from ....shared.exceptions.errors import PipelineError
from ...lightroom.domain.models import DiveEntry, MetadataRecord


class ExportStatus(str, Enum):
    """エクスポートのステータス"""

    PENDING = "pending"  # 実行待ち
    RUNNING = "running"  # 実行中
    SUCCESS = "success"  # 成功
    FAILED = "failed"  # 失敗
    PARTIAL = "partial"  # 部分的成功（一部エラーあり）
    CANCELLED = "cancelled"  # 中断


@dataclass(frozen=True)
class PipelineResult:
    """ダイブエントリ1件分の処理結果（成功またはエラー）"""

    index: int  # 入力シーケンス上の位置
    entry: DiveEntry
    record: Optional[MetadataRecord] = None
    artifact: Optional[str] = None  # レンダリング済みのプリセット
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        """成功したかどうか"""
        return self.error is None

    @property
    def error_type(self) -> Optional[str]:
        """エラーの分類名（成功時はNone）"""
        return type(self.error).__name__ if self.error is not None else None


@dataclass
class PipelineSummary:
    """処理結果のサマリー"""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures_by_type: dict[str, int] = field(default_factory=dict)
    cache_stats: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_results(
        cls,
        results: Iterable[PipelineResult],
        cache_stats: Optional[dict[str, float]] = None,
    ) -> "PipelineSummary":
        """処理結果のシーケンスからサマリーを集計"""
        results = list(results)
        failures = Counter(result.error_type for result in results if not result.ok)

        return cls(
            total=len(results),
            succeeded=sum(1 for result in results if result.ok),
            failed=sum(failures.values()),
            failures_by_type=dict(failures),
            cache_stats=dict(cache_stats or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """ログ出力用の辞書に変換"""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures_by_type": self.failures_by_type,
            "cache_stats": self.cache_stats,
        }


@dataclass
class ExportResult:
    """Lightroomエクスポートの実行結果"""

    run_id: str  # 実行ID（ユニーク）
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: ExportStatus = ExportStatus.PENDING
    total_entries: int = 0
    skipped_entries: int = 0  # 既存のプリセットがあるためスキップ
    written: list[Path] = field(default_factory=list)
    records: list[MetadataRecord] = field(default_factory=list)
    summary: Optional[PipelineSummary] = None
    errors: list[str] = field(default_factory=list)
    duration_seconds: Optional[float] = None
