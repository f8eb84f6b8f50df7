"""
SLA Infrastructure Adapters
===========================

- ``SLAConfigManager``: loads ``sla_config.yaml`` and hot-reloads it with
  watchdog, keeping the last good configuration when an edit is invalid.
- ``SLAScheduler``: APScheduler host for the periodic breach sweep and
  outbox delivery jobs.
"""

import threading
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from sst_resolve.core import ConfigurationException
from sst_resolve.shared.infrastructure.logging import get_logger
from sst_resolve.sla.application.services import ISLAConfigProvider
from sst_resolve.sla.domain import SLAConfig

logger = get_logger(__name__)

ReloadCallback = Callable[[SLAConfig], None]

_CONFIG_ERRORS = (yaml.YAMLError, ValidationError, OSError)


def read_sla_config(path: Path) -> SLAConfig:
    """Parse a YAML file into an ``SLAConfig``; a missing file yields the defaults."""
    if not path.exists():
        logger.warning("No SLA config file, falling back to default budgets", extra={"path": str(path)})
        return SLAConfig()

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return SLAConfig.model_validate(data or {})


class ConfigFileHandler(FileSystemEventHandler):
    """Reloads on writes to the config file and on editors' save-by-rename."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        super().__init__()
        self.config_manager = config_manager
        self.config_path = config_path.resolve()

    def _touches_config(self, *paths: Any) -> bool:
        return any(p and Path(p).resolve() == self.config_path for p in paths)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._touches_config(event.src_path):
            self.config_manager.reload()

    def on_created(self, event: FileSystemEvent) -> None:
        self.on_modified(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._touches_config(getattr(event, "dest_path", None)):
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Holds the current SLA configuration for every reader in the process.

    Reads are served under a lock because watchdog reloads from its own
    thread. A failed reload is logged and ignored; subscribers registered
    with ``on_reload`` only hear about configurations that validated.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._config: Optional[SLAConfig] = None
        self._path: Optional[Path] = None
        self._observer: Optional[Observer] = None
        self._subscribers: List[ReloadCallback] = []

    def load(self, path: Path) -> SLAConfig:
        """Read the file once at startup. An unreadable or invalid file is fatal."""
        self._path = Path(path)
        try:
            config = read_sla_config(self._path)
        except _CONFIG_ERRORS as e:
            raise ConfigurationException(
                f"Invalid SLA configuration: {e}", {"path": str(self._path)}
            ) from e
        self._swap(config)
        return config

    def reload(self) -> bool:
        if self._path is None:
            return False

        try:
            config = read_sla_config(self._path)
        except _CONFIG_ERRORS as e:
            logger.error(
                "Rejected SLA config change, previous config stays active",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        self._swap(config)
        for subscriber in self._subscribers:
            subscriber(config)
        logger.info("SLA config reloaded", extra={
            "path": str(self._path),
            "domains": sorted(config.domain_targets),
        })
        return True

    def _swap(self, config: SLAConfig) -> None:
        with self._lock:
            self._config = config

    def on_reload(self, callback: ReloadCallback) -> None:
        self._subscribers.append(callback)

    def start_watching(self) -> None:
        """
        Watch the config file's directory for edits.

        Does nothing when the file is absent; logs and carries on with the
        loaded config when the platform has no inotify support.
        """
        if self._path is None:
            raise RuntimeError("load() must be called before start_watching()")
        if not self._path.exists():
            logger.info("SLA config file absent, not watching", extra={"path": str(self._path)})
            return

        observer = Observer()
        try:
            observer.schedule(ConfigFileHandler(self, self._path), str(self._path.parent), recursive=False)
            observer.start()
        except OSError as e:
            logger.warning("Cannot watch SLA config, reload disabled", extra={"error": str(e)})
            return
        self._observer = observer
        logger.info("Watching SLA config", extra={"path": str(self._path)})

    def stop_watching(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)

    def get_config(self) -> SLAConfig:
        with self._lock:
            config = self._config
        if config is None:
            raise RuntimeError("SLA configuration not loaded")
        return config

    @property
    def config(self) -> SLAConfig:
        return self.get_config()


class SLAScheduler:
    """
    Runs registered coroutine jobs on fixed intervals.

    Jobs are registered up front with ``add_interval_job`` and scheduled
    when ``start`` is awaited. Overlapping runs of the same job are
    skipped rather than queued.
    """

    MISFIRE_GRACE_SECONDS = 60

    def __init__(self):
        self._jobs: Dict[str, Dict[str, Any]] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None

    def add_interval_job(
        self,
        job_id: str,
        job_func: Callable[[], Awaitable[Any]],
        seconds: int,
        name: Optional[str] = None
    ) -> None:
        if seconds <= 0:
            raise ValueError(f"Interval for {job_id} must be positive, got {seconds}")
        self._jobs[job_id] = {"func": job_func, "seconds": seconds, "name": name or job_id}

    async def start(self) -> None:
        if self.is_running:
            logger.warning("SLA scheduler start requested twice")
            return

        scheduler = AsyncIOScheduler()
        for job_id, job in self._jobs.items():
            scheduler.add_job(
                job["func"],
                trigger="interval",
                seconds=job["seconds"],
                id=job_id,
                name=job["name"],
                max_instances=1,
                coalesce=True,
                misfire_grace_time=self.MISFIRE_GRACE_SECONDS,
                replace_existing=True,
            )
        scheduler.start()
        self._scheduler = scheduler

        logger.info("SLA scheduler running", extra={
            "intervals_seconds": {job_id: job["seconds"] for job_id, job in self._jobs.items()}
        })

    async def stop(self) -> None:
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        scheduler.shutdown(wait=True)
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    @property
    def job_ids(self) -> List[str]:
        return list(self._jobs)
