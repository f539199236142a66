"""
Listing poller for the device listing view.

Runs two independent background loops:
- a fast loop fetching every device's download progress
- a slow loop fetching link records, then each device's online status
  and layout descriptor

Per-device requests fan out on bounded thread pools, one per loop. Each
cycle builds a new DeviceSnapshot and swaps it in under a lock, so readers
holding an older snapshot are never affected.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.common.config import ConsoleConfig, get_config
from src.common.ipc import MessageSubscriber, MessageType
from src.common.logger import setup_logger
from src.console import ConsoleClientError
from src.console.descriptor import LayoutDescriptor, descriptor_from_response
from src.console.models import LinkRecord
from src.console.reconciler import DeviceSnapshot, reconcile
from src.console.telemetry import DownloadProgress, extract_online_flag

logger = setup_logger(__name__)


class ListingPoller:
    """
    Keeps a device listing snapshot fresh.

    Example:
        with ListingPoller(client) as poller:
            poller.start()
            rows = poller.snapshot.visible()
    """

    DEFAULT_PROGRESS_INTERVAL = 2   # seconds
    DEFAULT_LISTING_INTERVAL = 30   # seconds
    DEFAULT_MAX_WORKERS = 8
    DEFAULT_DEVICE_TIMEOUT = 10     # seconds a cycle waits for per-device answers
    DEFAULT_LINK_PAGE_LIMIT = 1000
    EVENT_RECEIVE_TIMEOUT_MS = 500

    def __init__(
        self,
        client,
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
        listing_interval: float = DEFAULT_LISTING_INTERVAL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        device_timeout: float = DEFAULT_DEVICE_TIMEOUT,
        link_page_limit: int = DEFAULT_LINK_PAGE_LIMIT,
        subscriber: Optional[MessageSubscriber] = None,
        on_snapshot: Optional[Callable[[DeviceSnapshot], None]] = None,
    ):
        """
        Initialize the poller.

        Args:
            client: ConsoleAPIClient
            progress_interval: Seconds between download progress polls
            listing_interval: Seconds between link/online/layout polls
            max_workers: Size of each loop's per-device request pool
            device_timeout: Seconds a cycle waits for per-device answers
            link_page_limit: Page size for the link listing
            subscriber: Optional layout change event subscriber
            on_snapshot: Callback invoked with every new snapshot
        """
        self.client = client
        self.progress_interval = progress_interval
        self.listing_interval = listing_interval
        self.device_timeout = device_timeout
        self.link_page_limit = link_page_limit
        self._subscriber = subscriber
        self._on_snapshot = on_snapshot

        # Separate pools so a stalled listing fan-out never delays progress
        self._listing_executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ListingPoller-listing-worker"
        )
        self._progress_executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ListingPoller-progress-worker"
        )

        # Background thread state
        self._threads: List[threading.Thread] = []
        self._running = False
        self._closed = False
        self._stop_event = threading.Event()

        # Last known data, guarded by _lock
        self._lock = threading.Lock()
        self._records: List[LinkRecord] = []
        self._online: Dict[str, bool] = {}
        self._layouts: Dict[str, Optional[LayoutDescriptor]] = {}
        self._progress: Dict[str, DownloadProgress] = {}
        self._snapshot = DeviceSnapshot()

        # Statistics
        self._listing_cycles = 0
        self._progress_cycles = 0
        self._failed_requests = 0
        self._last_listing_time: Optional[float] = None
        self._last_progress_time: Optional[float] = None

        logger.info(
            "ListingPoller initialized - progress: %ss, listing: %ss, workers: %d",
            progress_interval, listing_interval, max_workers,
        )

    @classmethod
    def from_config(
        cls,
        client,
        config: Optional[ConsoleConfig] = None,
        subscriber: Optional[MessageSubscriber] = None,
    ) -> "ListingPoller":
        """Build a poller using the polling section of the configuration."""
        config = config or get_config()
        return cls(
            client,
            progress_interval=config.progress_interval,
            listing_interval=config.listing_interval,
            max_workers=config.max_workers,
            device_timeout=config.device_timeout,
            link_page_limit=config.link_page_limit,
            subscriber=subscriber,
        )

    @property
    def snapshot(self) -> DeviceSnapshot:
        """The latest snapshot."""
        with self._lock:
            return self._snapshot

    @property
    def is_running(self) -> bool:
        """Check if the loops are running."""
        return self._running

    def start(self) -> None:
        """Refresh once, then start the polling loops."""
        if self._closed:
            raise RuntimeError("ListingPoller was stopped and cannot be restarted")
        if self._running:
            logger.warning("Listing poller already running")
            return

        self._running = True
        self._stop_event.clear()

        self.refresh_now()

        targets = [
            (self._progress_loop, "ListingPoller-progress"),
            (self._listing_loop, "ListingPoller-listing"),
        ]
        if self._subscriber is not None:
            targets.append((self._event_loop, "ListingPoller-events"))

        self._threads = [threading.Thread(target=t, name=name, daemon=True) for t, name in targets]
        for thread in self._threads:
            thread.start()

        logger.info("Listing poller started")

    def stop(self) -> None:
        """Stop both loops, join their threads and shut the pools down."""
        if self._closed:
            return

        logger.info("Stopping listing poller...")
        self._running = False
        self._closed = True
        self._stop_event.set()

        for thread in self._threads:
            if thread.is_alive():
                thread.join(timeout=self.device_timeout + 5)
        self._threads = []

        self._listing_executor.shutdown(wait=True, cancel_futures=True)
        self._progress_executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Listing poller stopped")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - stop polling."""
        self.stop()
        return False

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    def _run_loop(self, interval: float, tick: Callable[[], Any], name: str) -> None:
        logger.info("%s loop started - interval: %ss", name, interval)
        while self._running:
            if self._stop_event.wait(timeout=interval):
                break
            try:
                tick()
            except Exception:
                logger.exception("%s poll failed", name)
        logger.info("%s loop ended", name)

    def _progress_loop(self) -> None:
        self._run_loop(self.progress_interval, self.refresh_progress, "Progress")

    def _listing_loop(self) -> None:
        self._run_loop(self.listing_interval, self.refresh_listing, "Listing")

    def _event_loop(self) -> None:
        """Refresh layouts on a save event, everything on a refresh request."""
        logger.info("Layout event loop started")
        while self._running and not self._stop_event.is_set():
            message = self._subscriber.receive(timeout_ms=self.EVENT_RECEIVE_TIMEOUT_MS)
            if message is None or not self._running:
                continue
            try:
                if message.msg_type == MessageType.REFRESH:
                    self.refresh_now()
                else:
                    mobile_ids = message.data.get('mobile_ids') or None
                    self.refresh_layouts(mobile_ids)
            except Exception:
                logger.exception("Handling %s event failed", message.msg_type.value)
        logger.info("Layout event loop ended")

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def _count_failures(self, count: int) -> None:
        if count:
            with self._lock:
                self._failed_requests += count

    def _fan_out(
        self,
        executor: ThreadPoolExecutor,
        fetch: Callable[[str], Any],
        mobile_ids: Iterable[str],
    ) -> Dict[str, Any]:
        """
        Run fetch for every device on the given pool.

        Returns:
            Results of the devices that answered in time without error
        """
        if self._closed:
            return {}

        futures = {executor.submit(fetch, mobile_id): mobile_id for mobile_id in mobile_ids}
        if not futures:
            return {}

        done, not_done = wait(futures, timeout=self.device_timeout)

        results: Dict[str, Any] = {}
        failures = 0
        for future in done:
            mobile_id = futures[future]
            try:
                results[mobile_id] = future.result()
            except Exception as e:
                failures += 1
                logger.debug("%s for %s failed: %s", getattr(fetch, '__name__', 'fetch'), mobile_id, e)

        for future in not_done:
            # Only queued futures cancel; a running call finishes on its own worker
            future.cancel()
            failures += 1
            logger.debug("%s timed out, keeping its previous value", futures[future])

        self._count_failures(failures)
        return results

    def _fetch_online(self, mobile_id: str) -> bool:
        return extract_online_flag(self.client.get_online_status(mobile_id))

    def _fetch_layout(self, mobile_id: str) -> Optional[LayoutDescriptor]:
        # A 404 comes back as None and clears the descriptor
        return descriptor_from_response(self.client.get_layout(mobile_id))

    def _fetch_progress(self, mobile_id: str) -> Optional[DownloadProgress]:
        return DownloadProgress.from_dict(self.client.get_download_progress(mobile_id))

    def _device_ids(self) -> List[str]:
        with self._lock:
            records = list(self._records)
        ids: List[str] = []
        for record in records:
            if record.mobile_id and record.mobile_id not in ids:
                ids.append(record.mobile_id)
        return ids

    def _rebuild(self) -> DeviceSnapshot:
        """Reconcile current data into a new snapshot and swap it in."""
        with self._lock:
            snapshot = reconcile(
                self._records,
                online=dict(self._online),
                layouts=dict(self._layouts),
                progress=dict(self._progress),
                loaded_at=time.time(),
            )
            self._snapshot = snapshot

        if self._on_snapshot is not None:
            try:
                self._on_snapshot(snapshot)
            except Exception:
                logger.exception("Snapshot callback failed")
        return snapshot

    def refresh_listing(self) -> DeviceSnapshot:
        """
        Fetch link records, then every device's online status and layout.

        A failed link fetch keeps the previous records. A device whose
        request fails keeps its previous value.
        """
        if self._closed:
            return self.snapshot

        try:
            rows = self.client.list_all_links(page_limit=self.link_page_limit)
        except ConsoleClientError as e:
            logger.warning("Could not load link records, keeping previous listing: %s", e)
        else:
            records = [LinkRecord.from_dict(row) for row in rows]
            current = {record.mobile_id for record in records if record.mobile_id}
            with self._lock:
                self._records = records
                # Devices gone from the link list start over if they return
                for state in (self._online, self._layouts, self._progress):
                    for mobile_id in [m for m in state if m not in current]:
                        del state[mobile_id]

        mobile_ids = self._device_ids()
        online = self._fan_out(self._listing_executor, self._fetch_online, mobile_ids)
        layouts = self._fan_out(self._listing_executor, self._fetch_layout, mobile_ids)

        with self._lock:
            self._online.update(online)
            self._layouts.update(layouts)

        self._listing_cycles += 1
        self._last_listing_time = time.time()
        return self._rebuild()

    def refresh_progress(self) -> DeviceSnapshot:
        """Fetch every device's download progress."""
        if self._closed:
            return self.snapshot

        results = self._fan_out(self._progress_executor, self._fetch_progress, self._device_ids())

        with self._lock:
            for mobile_id, progress in results.items():
                if progress is not None:
                    self._progress[progress.mobile_id or mobile_id] = progress

        self._progress_cycles += 1
        self._last_progress_time = time.time()
        return self._rebuild()

    def refresh_layouts(self, mobile_ids: Optional[Iterable[str]] = None) -> DeviceSnapshot:
        """
        Re-read layout descriptors only.

        Args:
            mobile_ids: Devices to refresh (default: every known device)
        """
        if self._closed:
            return self.snapshot

        targets = list(mobile_ids) if mobile_ids else self._device_ids()
        layouts = self._fan_out(self._listing_executor, self._fetch_layout, targets)
        with self._lock:
            self._layouts.update(layouts)

        logger.debug("Refreshed layouts for %d of %d device(s)", len(layouts), len(targets))
        return self._rebuild()

    def refresh_now(self) -> DeviceSnapshot:
        """Manual refresh of everything."""
        self.refresh_listing()
        return self.refresh_progress()

    def get_status(self) -> Dict[str, Any]:
        """
        Get poller status for reporting.

        Returns:
            Dictionary with poller status information
        """
        snapshot = self.snapshot
        return {
            'running': self._running,
            'listing_cycles': self._listing_cycles,
            'progress_cycles': self._progress_cycles,
            'failed_requests': self._failed_requests,
            'last_listing_time': self._last_listing_time,
            'last_progress_time': self._last_progress_time,
            'devices': len(snapshot.rows),
            'progress_interval': self.progress_interval,
            'listing_interval': self.listing_interval,
        }
