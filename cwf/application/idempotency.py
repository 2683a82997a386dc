import json
import threading
from collections import OrderedDict
from pathlib import Path

IdempotencyKey = tuple[str, str, str]  # (workflow_id, step_id, turn_id)

_TURN_SCOPE = "*"


class IdempotencyLedger:
    """Remembers which (workflow, step, turn) keys have been processed.

    A key is claimed before any side-effecting adapter call. Oldest keys
    are evicted once `max_entries` is reached. With a `path`, claims are
    written to a JSON file so separate processes sharing a storage root
    (one CLI invocation per turn) see each other's turns.
    """

    def __init__(self, max_entries: int = 10_000, path: Path | None = None):
        self.max_entries = max_entries
        self.path = path
        self._keys: OrderedDict[IdempotencyKey, None] = OrderedDict()
        self._lock = threading.Lock()
        if path is not None and path.exists():
            self._load(path)

    def claim(self, key: IdempotencyKey) -> bool:
        """Claim `key`. Returns False if it was already claimed."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys[key] = None
            while len(self._keys) > self.max_entries:
                self._keys.popitem(last=False)
            self._persist()
            return True

    def release(self, key: IdempotencyKey) -> None:
        """Forget `key` so a retried turn can run again."""
        with self._lock:
            if key in self._keys:
                del self._keys[key]
                self._persist()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def claim_turn(self, thread_id: str, turn_id: str) -> bool:
        """Claim a turn for a whole thread, whatever step it lands on."""
        return self.claim((thread_id, _TURN_SCOPE, turn_id))

    def release_turn(self, thread_id: str, turn_id: str) -> None:
        self.release((thread_id, _TURN_SCOPE, turn_id))

    def _load(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Invalid idempotency ledger at {path}")
        for item in data[-self.max_entries:]:
            self._keys[(str(item[0]), str(item[1]), str(item[2]))] = None

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump([list(k) for k in self._keys], f)
        temp_file.replace(self.path)
