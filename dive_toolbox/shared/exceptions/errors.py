"""カスタム例外定義"""
from typing import Optional


class ToolboxError(Exception):
    """ツールボックス基底例外"""

    pass


class ConfigurationError(ToolboxError):
    """設定エラー"""

    pass


class CacheUnavailable(ToolboxError):
    """ジオコードキャッシュ（ローカルストレージ）のI/Oエラー"""

    pass


class GeocodeProviderError(ToolboxError):
    """
    ジオコーディングプロバイダーのエラー

    retryable=True はタイムアウト・通信エラー・5xx・クォータ超過、
    retryable=False は4xx・リクエスト拒否などの恒久的な失敗
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class ExportError(ToolboxError):
    """プリセットファイルの読み書きエラー"""

    pass


class PipelineError(ToolboxError):
    """ダイブエントリ単位の失敗（パイプライン結果として報告される）"""

    pass


class ResolutionFailed(PipelineError):
    """キャッシュミス後、プロバイダー呼び出しがリトライを含めて失敗した"""

    pass


class InvalidDiveEntry(PipelineError):
    """ダイブエントリに識別子・タイトル・座標が欠けている"""

    pass


class RenderError(PipelineError):
    """メタデータレコードをテンプレートに出力できない"""

    pass
