"""
Page Bridge Configuration

Runtime knobs for the page agent. Defaults match the operator protocol;
every field can be overridden from the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

ENV_PREFIX = "PAGE_BRIDGE_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass
class BridgeConfig:
    # Explicit operator endpoint; derived from the page URL when unset
    operator_url: Optional[str] = None
    # Seconds between a close and the next connection attempt
    reconnect_delay: float = 3.0
    # Raw expressions and the eval action run operator code with page privileges
    allow_eval: bool = True
    ping_interval: Optional[float] = 20
    ping_timeout: Optional[float] = 10

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Build a config from PAGE_BRIDGE_* environment variables."""
        operator_url = os.environ.get(ENV_PREFIX + "OPERATOR_URL") or None
        return cls(
            operator_url=operator_url,
            reconnect_delay=_env_float("RECONNECT_DELAY", cls.reconnect_delay),
            allow_eval=_env_bool("ALLOW_EVAL", cls.allow_eval),
            ping_interval=_env_float("PING_INTERVAL", cls.ping_interval),
            ping_timeout=_env_float("PING_TIMEOUT", cls.ping_timeout),
        )
