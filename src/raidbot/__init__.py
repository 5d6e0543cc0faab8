"""raidbot: resilient multi-provider chat relay.

Proxies chat messages to upstream LLM providers (Gemini, Groq) with error
classification, retry with backoff, per-provider circuit breakers, and
ordered fallback between providers.
"""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _get_version

try:
    __version__ = _get_version("raidbot")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
