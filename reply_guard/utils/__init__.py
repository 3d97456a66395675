"""Utility helpers for reply-guard."""

from reply_guard.utils.helpers import compact_preview, ensure_dir, get_data_path

__all__ = ["ensure_dir", "get_data_path", "compact_preview"]
