"""テキスト処理ユーティリティ"""

import re
from typing import Optional


def normalize_text(text: Optional[str]) -> Optional[str]:
    """
    テキストを正規化

    - 前後の空白を除去
    - 連続する空白を1つに
    - 空文字列はNone（未設定）として扱う
    """
    if not text:
        return None

    text = re.sub(r"\s+", " ", text)
    text = text.strip()

    return text if text else None


def strip_suffix(text: Optional[str], suffix: str) -> Optional[str]:
    """
    末尾の接尾辞（例: "County"）を除去して正規化

    Args:
        text: 対象文字列
        suffix: 除去する接尾辞

    Returns:
        Optional[str]: 接尾辞を除いた文字列（空になった場合はNone）
    """
    text = normalize_text(text)
    if text is None:
        return None

    if text.endswith(suffix):
        text = text[: -len(suffix)]

    return normalize_text(text)


def upper_or_none(text: Optional[str]) -> Optional[str]:
    """正規化した上で大文字化（空の場合はNone）"""
    text = normalize_text(text)
    return text.upper() if text else None
