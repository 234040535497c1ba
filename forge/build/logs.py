import threading
from forge.config import BUILD_LOG_TAIL_CHARS

def tail(text: str, limit: int = BUILD_LOG_TAIL_CHARS) -> str:
    if text is None:
        return ""
    return text[-limit:] if limit > 0 else ""

class LogTail:
    """Append-only text buffer that keeps only the last `limit` characters."""

    def __init__(self, limit: int = BUILD_LOG_TAIL_CHARS):
        self.limit = limit
        self._text = ""
        self._lock = threading.Lock()

    def write(self, chunk: str) -> None:
        if not chunk:
            return
        with self._lock:
            self._text = tail(self._text + chunk, self.limit)

    def getvalue(self) -> str:
        with self._lock:
            return self._text

    def __str__(self) -> str:
        return self.getvalue()
