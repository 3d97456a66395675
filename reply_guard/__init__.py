"""reply-guard - Auto-retry supervisor for chat reply generation."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reply-guard")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "🛡"
__brand__ = "reply-guard"
