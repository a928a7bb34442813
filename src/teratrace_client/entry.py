from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
  INFO = "INFO"
  WARN = "WARN"
  ERROR = "ERROR"
  DEBUG = "DEBUG"


class LogEntry(BaseModel):
  """
  Canonical log event shape sent to the collector.

  ``level`` and ``message`` are deliberately untyped: the collector, not the
  client, rejects malformed entries.
  """

  model_config = ConfigDict(frozen=True, populate_by_name=True)

  level: Any = LogLevel.INFO.value
  message: Any = None
  service: str
  timestamp: str
  trace_id: Optional[str] = Field(default=None, alias="traceId")
  session_id: Optional[str] = Field(default=None, alias="sessionId")
  metadata: Dict[str, Any] = Field(default_factory=dict)

  def to_wire(self) -> Dict[str, Any]:
    """
    Flat JSON-ready form of the entry.

    Metadata keys are merged into the top level last, so they win over
    same-named fields.
    """
    payload: Dict[str, Any] = {
      "level": self.level,
      "message": self.message,
      "service": self.service,
      "timestamp": self.timestamp,
    }
    if self.trace_id:
      payload["traceId"] = self.trace_id
    if self.session_id:
      payload["sessionId"] = self.session_id
    payload.update(self.metadata)
    return payload

  def to_json(self) -> str:
    return json.dumps(self.to_wire(), default=str)


def utc_now_iso() -> str:
  """Current UTC time as ISO-8601 with millisecond precision and a ``Z`` suffix."""
  now = datetime.now(timezone.utc)
  return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize(partial: Optional[Mapping[str, Any]], default_service: str) -> LogEntry:
  """
  Build a ``LogEntry`` from a caller-supplied partial record.

  Nothing in ``partial`` is required. ``level`` defaults to INFO, ``service``
  to ``default_service`` and ``timestamp`` to now. Trace and session ids are
  accepted under their camelCase or snake_case names and kept only when set.
  """
  record = dict(partial or {})

  level = record.get("level") or LogLevel.INFO.value
  if isinstance(level, LogLevel):
    level = level.value

  timestamp = record.get("timestamp") or utc_now_iso()
  if isinstance(timestamp, datetime):
    timestamp = timestamp.isoformat()

  trace_id = record.get("traceId") or record.get("trace_id")
  session_id = record.get("sessionId") or record.get("session_id")

  return LogEntry(
    level=level,
    message=record.get("message"),
    service=str(record.get("service") or default_service),
    timestamp=str(timestamp),
    trace_id=str(trace_id) if trace_id else None,
    session_id=str(session_id) if session_id else None,
    metadata=dict(record.get("metadata") or {}),
  )
