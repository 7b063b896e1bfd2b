# contract_lifecycle/services/watcher.py
import logging
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from contract_lifecycle.exceptions import ContractLifecycleError

logger = logging.getLogger(__name__)


class ContractWatcher:
    """
    Poll ``*.sol`` files and redeploy the ones that change as ``dev-<unix time>``.

    The first scan only records a baseline. ``run`` returns when the cancel
    event is set or ``deadline`` seconds have passed.
    """

    def __init__(
        self,
        lifecycle,
        paths: Iterable[str],
        network: Optional[str] = None,
        interval: float = 1.0,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ):
        self.lifecycle = lifecycle
        self.paths = [Path(p) for p in paths]
        self.network = network
        self.interval = interval
        self.cancel_event = cancel_event or threading.Event()
        self.deadline = deadline
        self._mtimes: Optional[Dict[Path, float]] = None

    def scan(self) -> Dict[Path, float]:
        found = {}
        for root in self.paths:
            if root.is_file() and root.suffix == ".sol":
                found[root] = root.stat().st_mtime
            elif root.is_dir():
                for f in root.rglob("*.sol"):
                    found[f] = f.stat().st_mtime
        return found

    def changed_files(self) -> List[Path]:
        current = self.scan()
        if self._mtimes is None:
            self._mtimes = current
            return []
        changed = [p for p, mtime in sorted(current.items()) if self._mtimes.get(p) != mtime]
        self._mtimes = current
        return changed

    def redeploy(self, path: Path):
        version = f"dev-{int(time.time())}"
        logger.info("Contract source changed, redeploying", extra={"context": {"file": str(path), "version": version}})
        return self.lifecycle.deploy({
            "name": path.stem,
            "version": version,
            "network": self.network,
            "source_file": str(path),
            "metadata": {"hot_reload": True},
        })

    def poll_once(self) -> list:
        deployments = []
        for path in self.changed_files():
            try:
                deployments.append(self.redeploy(path))
            except ContractLifecycleError as e:
                # keep watching; the next save retries
                logger.error("Hot reload deploy failed", extra={"context": {"file": str(path), "error": str(e)}})
        return deployments

    def stop(self) -> None:
        self.cancel_event.set()

    def run(self) -> list:
        logger.info("Watching contracts", extra={"context": {"paths": [str(p) for p in self.paths]}})
        started = time.monotonic()
        deployments = []
        while not self.cancel_event.is_set():
            deployments.extend(self.poll_once())
            if self.deadline is not None and time.monotonic() - started >= self.deadline:
                break
            self.cancel_event.wait(self.interval)
        logger.info("Watcher stopped", extra={"context": {"deployments": len(deployments)}})
        return deployments
