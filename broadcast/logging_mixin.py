import time
from typing import List

from .models import mask_secret


class LoggingMixin:
    def _remember_secret(self, secret: str) -> None:
        # Grow-only: a retired key can still show up in a dying master's stderr.
        if secret:
            with self._log_lock:
                self._secrets.add(secret)

    def _known_secrets(self) -> List[str]:
        with self._log_lock:
            keys = set(self._secrets)
        for cfg in (self.applied_config, self.last_polled_config):
            if cfg is not None and cfg.stream_key:
                keys.add(cfg.stream_key)
        # longest first so a key that contains another is masked whole
        return sorted(keys, key=len, reverse=True)

    def _append_log(self, msg: str) -> None:
        # Own lock, not self.lock: stderr drain threads log while the
        # coordinator may hold self.lock waiting for their process to exit.
        for secret in self._known_secrets():
            msg = msg.replace(secret, mask_secret(secret))
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{ts}] {msg}"
        with self._log_lock:
            self._logs.append(line)
            if len(self._logs) > self._log_max:
                # keep last _log_max entries
                self._logs = self._logs[-self._log_max :]
        if self._log_to_stdout:
            print(line, flush=True)

    def get_logs(self, limit: int = 200) -> List[str]:
        with self._log_lock:
            if limit <= 0 or limit >= len(self._logs):
                return list(self._logs)
            return self._logs[-limit:]
