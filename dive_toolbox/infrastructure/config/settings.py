"""アプリケーション設定（Pydantic Settings）"""
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...shared.exceptions.errors import ConfigurationError


class Settings(BaseSettings):
    """アプリケーション設定"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DIVE_TOOLBOX_",
        case_sensitive=False,
        extra="ignore",
    )

    # Geocoding
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps API Key",
    )
    geocode_rate: float = Field(
        default=10.0,
        gt=0,
        description="ジオコーディングのトークン補充レート（トークン/秒）",
    )
    geocode_burst: int = Field(
        default=5,
        ge=1,
        description="ジオコーディングのバースト容量（トークン数）",
    )
    geocode_timeout: int = Field(
        default=10,
        gt=0,
        description="ジオコーディングAPIのタイムアウト（秒）",
    )
    geocode_language: Optional[str] = Field(
        default="en",
        description="ジオコーディング結果の言語（例: en, ja）",
    )
    coordinate_precision: int = Field(
        default=4,
        ge=0,
        le=8,
        description="キャッシュキー用の座標の丸め桁数（小数点以下）",
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0,
        description="リトライ可能なエラー時の待機時間（秒）",
    )
    max_retry_backoff: float = Field(
        default=5.0,
        ge=0,
        description="リトライ待機時間の上限（秒）",
    )

    # Pipeline
    concurrency: int = Field(
        default=4,
        ge=1,
        description="同時に実行するジオコーディング数",
    )
    grace_period: float = Field(
        default=5.0,
        ge=0,
        description="キャンセル時に実行中のリクエストを待つ猶予時間（秒）",
    )

    # Storage
    cache_path: Path = Field(
        default=Path("~/.cache/dive-toolbox/geocode.sqlite3"),
        validate_default=True,
        description="ジオコードキャッシュ（SQLite）のパス",
    )

    # Lightroom
    lightroom_presets_dir: Optional[Path] = Field(
        default=None,
        description="Lightroomのメタデータプリセットディレクトリ",
    )
    title_format: str = Field(
        default="{title}",
        description="プリセットタイトルの書式（{title}, {region}, {city}, {country} が使用可能）",
    )
    overrides_path: Optional[Path] = Field(
        default=None,
        description="位置情報の上書き定義（YAML）のパス",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="ログファイルのパス",
    )

    @field_validator("cache_path", "lightroom_presets_dir", "overrides_path", "log_file")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        """`~` をホームディレクトリに展開"""
        return value.expanduser() if value is not None else None

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    @property
    def effective_retry_backoff(self) -> float:
        """上限を適用したリトライ待機時間"""
        return min(self.retry_backoff, self.max_retry_backoff)

    def require_api_key(self) -> str:
        """
        Google Maps API Keyを取得

        Raises:
            ConfigurationError: API Keyが設定されていない場合
        """
        if not self.google_maps_api_key:
            raise ConfigurationError(
                "Google Maps API key is not configured (DIVE_TOOLBOX_GOOGLE_MAPS_API_KEY)"
            )
        return self.google_maps_api_key

    def require_presets_dir(self) -> Path:
        """
        Lightroomのプリセットディレクトリを取得

        Raises:
            ConfigurationError: ディレクトリが設定されていない場合
        """
        if self.lightroom_presets_dir is None:
            raise ConfigurationError(
                "Lightroom metadata presets directory is not configured "
                "(DIVE_TOOLBOX_LIGHTROOM_PRESETS_DIR)"
            )
        return self.lightroom_presets_dir
