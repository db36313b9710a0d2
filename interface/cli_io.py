import json
from datetime import datetime, timezone
from typing import Dict, Optional


def iso_timestamp() -> str:
    """UTC timestamp for structured CLI output."""
    return datetime.now(timezone.utc).isoformat()


def structured_response(
    command: str,
    *,
    status: str = "OK",
    message: str = "",
    payload: Optional[Dict] = None,
    summary: Optional[str] = None,
    exit_code: int = 0,
) -> int:
    """Unified JSON response for every blockout command."""
    body: Dict[str, object] = {
        "command": command,
        "status": status,
        "message": message,
        "timestamp": iso_timestamp(),
        "payload": payload or {},
    }
    if summary:
        body["summary"] = summary
    print(json.dumps(body, ensure_ascii=False, indent=2))
    return exit_code


def structured_error(command: str, message: str, *, payload: Optional[Dict] = None, status: str = "ERROR") -> int:
    """Short-hand for structured error responses."""
    return structured_response(command, status=status, message=message, payload=payload, exit_code=1)


def parse_timestamp(value: str) -> int:
    """Epoch milliseconds from `1700000000000`, `2024-05-01` or `2024-05-01T09:30` (local time)."""
    text = (value or "").strip()
    if not text:
        raise ValueError("empty timestamp")
    if text.isdigit():
        return int(text)
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"not a date or epoch-ms timestamp: {value!r}") from exc
    return int(moment.timestamp() * 1000)


def format_timestamp(epoch_ms: Optional[int]) -> Optional[str]:
    if not epoch_ms:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


__all__ = ["iso_timestamp", "structured_response", "structured_error", "parse_timestamp", "format_timestamp"]
