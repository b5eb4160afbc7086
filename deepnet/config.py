"""
Runtime configuration read from the environment.

Recognised variables:
  - DEEPNET_DEVICE: "auto" (default), "cpu", "cuda" or "cuda:N"
  - DEEPNET_CHECK_BOUNDS: "1" (default) selects the bounds-checked kernel
  - DEEPNET_SEED: integer seed for weight initialisers (unset = nondeterministic)
  - DEEPNET_LOG_LEVEL: logging level name used by `configure_logging`

Unparseable values fall back to the defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class RuntimeConfig:
    device: str = "auto"
    check_bounds: bool = True
    seed: Optional[int] = None
    log_level: str = "WARNING"


def _parse_device(raw: str | None) -> str:
    s = str(raw or "auto").strip().lower()
    if s in {"auto", "cpu", "cuda"}:
        return s
    if s.startswith("cuda:") and s[len("cuda:") :].isdigit():
        return s
    return "auto"


def _parse_seed(raw: str | None) -> Optional[int]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def load_config(env: Mapping[str, str] | None = None) -> RuntimeConfig:
    env = os.environ if env is None else env
    check_raw = str(env.get("DEEPNET_CHECK_BOUNDS", "1")).strip().lower()
    return RuntimeConfig(
        device=_parse_device(env.get("DEEPNET_DEVICE")),
        check_bounds=check_raw not in _FALSY,
        seed=_parse_seed(env.get("DEEPNET_SEED")),
        log_level=str(env.get("DEEPNET_LOG_LEVEL", "WARNING")).strip().upper() or "WARNING",
    )


__all__ = ["RuntimeConfig", "load_config"]
