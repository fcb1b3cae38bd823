# storefront/logs.py
import logging
import threading
from collections import Counter

import requests

from storefront import config

# ---------- Logging ----------
log = logging.getLogger("storefront")


def setup_logging(log_file=None, level=logging.INFO):
    """Attach file + console handlers to the storefront logger once."""
    if getattr(log, "_configured", False):
        return log
    log.setLevel(level)
    fh = logging.FileHandler(log_file or config.LOG_FILE)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log.addHandler(fh); log.addHandler(ch)
    log._configured = True
    return log


def get_logger(name: str) -> logging.Logger:
    return log.getChild(name)


# ---------- Notify ----------
def notify(msg: str):
    if not config.SLACK_WEBHOOK_URL:
        return
    try:
        requests.post(config.SLACK_WEBHOOK_URL, json={"text": msg}, timeout=5)
    except requests.RequestException as e:
        log.warning(f"Slack notify failed: {e}")


# ---------- Swallowed failure counters ----------
class SyncStats:
    """Counts failures that were logged and swallowed instead of raised."""

    def __init__(self):
        self._lock = threading.Lock()
        self._failures = Counter()
        self._last_error = {}

    def record_failure(self, kind: str, error: Exception):
        with self._lock:
            self._failures[kind] += 1
            self._last_error[kind] = str(error)

    def count(self, kind: str) -> int:
        with self._lock:
            return self._failures[kind]

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._failures.values())

    def as_dict(self) -> dict:
        with self._lock:
            return {
                "total": sum(self._failures.values()),
                "by_kind": dict(self._failures),
                "last_error": dict(self._last_error),
            }


sync_stats = SyncStats()
