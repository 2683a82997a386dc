"""Conversation Store adapter: append-only message log per thread.

Messages are plain dicts such as ``{"role": "user", "content": "..."}``.
The store stamps ``created_at`` when the caller does not.
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cwf.domain.constants import (
    DEFAULT_STORAGE_ROOT,
    MESSAGES_FILENAME,
    THREADS_DIRNAME,
)


class ConversationStore(ABC):
    @abstractmethod
    def append_message(self, thread_id: str, content: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def list_recent_messages(self, thread_id: str, limit: int) -> list[dict[str, Any]]:
        """Return the last `limit` messages on a thread, oldest first."""
        ...


def _stamped(content: dict[str, Any]) -> dict[str, Any]:
    message = dict(content)
    message.setdefault("created_at", datetime.now(timezone.utc).isoformat())
    return message


def _tail(messages: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    if limit <= 0:
        return []
    return messages[-limit:]


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: dict[str, list[dict[str, Any]]] = {}

    def append_message(self, thread_id: str, content: dict[str, Any]) -> None:
        with self._lock:
            self._messages.setdefault(thread_id, []).append(_stamped(content))

    def list_recent_messages(self, thread_id: str, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            messages = [dict(m) for m in self._messages.get(thread_id, [])]
        return _tail(messages, limit)


class FileConversationStore(ConversationStore):
    """Stores threads/<thread_id>/messages.jsonl, one JSON object per line."""

    def __init__(self, storage_root: Path | None = None):
        self.threads_root = (storage_root or DEFAULT_STORAGE_ROOT) / THREADS_DIRNAME
        self.threads_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _messages_file(self, thread_id: str) -> Path:
        return self.threads_root / thread_id / MESSAGES_FILENAME

    def append_message(self, thread_id: str, content: dict[str, Any]) -> None:
        messages_file = self._messages_file(thread_id)
        with self._lock:
            messages_file.parent.mkdir(parents=True, exist_ok=True)
            with open(messages_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(_stamped(content), ensure_ascii=False) + "\n")

    def list_recent_messages(self, thread_id: str, limit: int) -> list[dict[str, Any]]:
        messages_file = self._messages_file(thread_id)
        if not messages_file.exists():
            return []

        messages = []
        with self._lock, open(messages_file, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"Invalid message record at {messages_file}:{line_no}: {e}"
                    ) from e
        return _tail(messages, limit)
