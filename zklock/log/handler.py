import sys
import queue
import logging
import requests
import threading
from typing import Dict, List, Optional, Tuple

import zklock.settings as settings

StreamKey = Tuple[str, str]


class LokiHandler(logging.Handler):
    """
    Ships log records to a Grafana Loki instance in batches.

    `emit()` only enqueues; a background thread pushes whatever has queued up
    every flush interval, or sooner once a full batch is waiting. Records are
    grouped into one Loki stream per (level, logger) pair, all labelled with
    the lock name and the identity of this host, so the history of one lock
    can be followed across the whole cluster.
    """

    batch_size = 200

    def __init__(self, url: str, lock_name: str, identity: str, org_id: Optional[str] = None):
        """
        :param url: The base URL of the Loki instance.
        :param lock_name: The lock this process runs under.
        :param identity: The identity this process claims locks with.
        :param org_id: The Loki tenant, sent as the 'X-Scope-OrgID' header.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.lock_name = lock_name
        self.identity = identity
        self.flush_interval = settings.LOG_BUFFER_FLUSH_INTERVAL

        self.session = requests.Session()
        self.session.headers['Content-Type'] = 'application/json'
        if org_id:
            self.session.headers['X-Scope-OrgID'] = org_id

        self._pending: "queue.Queue[Tuple[StreamKey, List[str]]]" = queue.Queue()
        self._batch_ready = threading.Event()
        self._stop_event = threading.Event()
        self._push_lock = threading.Lock()
        self._flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self._flush_thread.start()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            key = (record.levelname.lower(), record.name)
            self._pending.put((key, [str(int(record.created * 1e9)), self.format(record)]))
            if self._pending.qsize() >= self.batch_size:
                self._batch_ready.set()
        except Exception:
            self.handleError(record)

    def _periodic_flush(self) -> None:
        while not self._stop_event.is_set():
            self._batch_ready.wait(self.flush_interval)
            self._batch_ready.clear()
            self.flush()
        self.flush()

    def _drain(self) -> Dict[StreamKey, List[List[str]]]:
        streams: Dict[StreamKey, List[List[str]]] = {}
        while True:
            try:
                key, value = self._pending.get_nowait()
            except queue.Empty:
                return streams
            streams.setdefault(key, []).append(value)

    def _labels(self, level: str, logger_name: str) -> Dict[str, str]:
        return {
            "job": "zklock",
            "lock": self.lock_name,
            "hostname": self.identity,
            "level": level,
            "logger": logger_name,
        }

    def flush(self) -> None:
        with self._push_lock:
            streams = self._drain()
            if not streams:
                return
            payload = {
                "streams": [
                    {"stream": self._labels(level, logger_name), "values": values}
                    for (level, logger_name), values in streams.items()
                ]
            }
            count = sum(len(values) for values in streams.values())
            try:
                response = self.session.post(self.url, json=payload, timeout=5)
                # Loki answers a successful push with 204 No Content
                if response.status_code != 204:
                    print(f"ERROR: Loki returned {response.status_code} for {count} records: {response.text}",
                          file=sys.stderr)
            except requests.RequestException as e:
                print(f"CRITICAL: Failed to send {count} records to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        """Stops the flush thread after a final push of everything still queued."""
        self._stop_event.set()
        self._batch_ready.set()
        if self._flush_thread.is_alive():
            self._flush_thread.join(timeout=self.flush_interval + 2)
        self.session.close()
        super().close()
