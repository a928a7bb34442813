from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

_logger = logging.getLogger(__name__)

CONFIG_FILE = Path("_teratrace/config.json")


class Transport(str, Enum):
  HTTP = "http"
  WS = "ws"


class OverflowPolicy(str, Enum):
  DROP_OLDEST = "drop_oldest"
  REJECT_NEW = "reject_new"


@dataclass(frozen=True)
class ClientConfig:
  """
  Configuration for the TeraTrace client.

  Immutable after construction. Values are validated in ``__post_init__``;
  an unrecognized ``transport`` falls back to ``"http"`` for compatibility
  with existing callers.
  """

  host: str = "localhost"
  http_port: int = 8090
  ws_port: int = 8081
  service: str = "node-app"
  transport: str = Transport.HTTP.value
  auto_reconnect: bool = True
  enabled: bool = True
  http_timeout: float = 5.0
  reconnect_delay: float = 5.0
  queue_maxsize: Optional[int] = None
  queue_overflow: str = OverflowPolicy.DROP_OLDEST.value

  def __post_init__(self) -> None:
    if not self.host:
      raise ValueError("TeraTrace host must be a non-empty string")
    _validate_port("http_port", self.http_port)
    _validate_port("ws_port", self.ws_port)
    if not self.service:
      raise ValueError("TeraTrace service name must be a non-empty string")
    if self.http_timeout <= 0:
      raise ValueError(f"http_timeout must be positive, got {self.http_timeout!r}")
    if self.reconnect_delay < 0:
      raise ValueError(f"reconnect_delay must not be negative, got {self.reconnect_delay!r}")
    if self.queue_maxsize is not None and self.queue_maxsize < 1:
      raise ValueError(f"queue_maxsize must be at least 1, got {self.queue_maxsize!r}")

    try:
      policy = OverflowPolicy(self.queue_overflow)
    except ValueError:
      raise ValueError(
        f"Invalid queue_overflow {self.queue_overflow!r}. "
        f"Expected one of: {', '.join(p.value for p in OverflowPolicy)}"
      ) from None
    object.__setattr__(self, "queue_overflow", policy.value)

    transport = str(self.transport).strip().lower()
    if transport not in (Transport.HTTP.value, Transport.WS.value):
      _logger.warning(
        "Unknown TeraTrace transport %r, falling back to %r",
        self.transport,
        Transport.HTTP.value,
      )
      transport = Transport.HTTP.value
    object.__setattr__(self, "transport", transport)

  @property
  def http_url(self) -> str:
    return f"http://{self.host}:{self.http_port}/ingest"

  @property
  def ws_url(self) -> str:
    return f"ws://{self.host}:{self.ws_port}/ws"

  @classmethod
  def from_env(cls) -> "ClientConfig":
    """
    Load configuration from environment variables.

    Optional:
      - TERATRACE_HOST (default: localhost)
      - TERATRACE_HTTP_PORT (default: 8090)
      - TERATRACE_WS_PORT (default: 8081)
      - TERATRACE_SERVICE (default: node-app)
      - TERATRACE_TRANSPORT (default: http)
      - TERATRACE_AUTO_RECONNECT (default: true)
      - TERATRACE_ENABLED (default: true)
    """
    return cls.from_params_or_env()

  @classmethod
  def from_params_or_env(cls, **params: Any) -> "ClientConfig":
    """
    Build configuration from explicit parameters, falling back to environment variables.

    Priority:
      1. Explicit keyword arguments (``None`` counts as not given)
      2. Environment variables
      3. Config file (_teratrace/config.json)
      4. Field defaults
    """
    unknown = set(params) - set(cls.__dataclass_fields__)
    if unknown:
      raise TypeError(f"Unknown TeraTrace config option(s): {', '.join(sorted(unknown))}")

    values = _read_config_file()
    values.update(_read_env())
    values.update({key: value for key, value in params.items() if value is not None})
    return cls(**values)


_ENV_KEYS = {
  "TERATRACE_HOST": ("host", str),
  "TERATRACE_HTTP_PORT": ("http_port", int),
  "TERATRACE_WS_PORT": ("ws_port", int),
  "TERATRACE_SERVICE": ("service", str),
  "TERATRACE_TRANSPORT": ("transport", str),
}

_FILE_KEYS = {
  "host": "host",
  "httpPort": "http_port",
  "http_port": "http_port",
  "wsPort": "ws_port",
  "ws_port": "ws_port",
  "service": "service",
  "transport": "transport",
  "autoReconnect": "auto_reconnect",
  "auto_reconnect": "auto_reconnect",
}


def _validate_port(name: str, value: Any) -> None:
  if isinstance(value, bool) or not isinstance(value, int) or not 0 < value < 65536:
    raise ValueError(f"Invalid {name} {value!r}. Expected an integer between 1 and 65535.")


def _read_env() -> Dict[str, Any]:
  values: Dict[str, Any] = {}
  for env_name, (field_name, convert) in _ENV_KEYS.items():
    raw = os.getenv(env_name)
    if raw is None or not raw.strip():
      continue
    try:
      values[field_name] = convert(raw.strip())
    except ValueError:
      raise ValueError(f"Invalid {env_name} '{raw}'") from None

  auto_reconnect = _get_flag("TERATRACE_AUTO_RECONNECT")
  if auto_reconnect is not None:
    values["auto_reconnect"] = auto_reconnect
  enabled = _get_flag("TERATRACE_ENABLED")
  if enabled is not None:
    values["enabled"] = enabled
  return values


def _read_config_file() -> Dict[str, Any]:
  if not CONFIG_FILE.exists():
    return {}
  try:
    raw = json.loads(CONFIG_FILE.read_text())
  except (OSError, ValueError) as exc:
    _logger.warning("Ignoring unreadable TeraTrace config file %s: %s", CONFIG_FILE, exc)
    return {}
  if not isinstance(raw, dict):
    return {}
  return {_FILE_KEYS[key]: value for key, value in raw.items() if key in _FILE_KEYS}


def _get_flag(name: str) -> Optional[bool]:
  """
  Parse a boolean environment flag.

  Accepts common truthy/falsey strings; an unset variable yields ``None``.
  Unknown values are treated as false.
  """
  raw = os.getenv(name)
  if raw is None:
    return None

  value = raw.strip().lower()
  if value in ("1", "true", "yes", "on"):
    return True
  return False
