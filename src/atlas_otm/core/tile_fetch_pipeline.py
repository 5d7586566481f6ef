import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from atlas_otm.infrastructure.error_log import ErrorLog
from atlas_otm.interfaces.tile_cache import IProgressSink, ITileFetcher
from atlas_otm.models.geo import BoundingBox, TileRange
from atlas_otm.models.progress import ErrorEvent, FetchProgress, ProgressEvent, SummaryEvent
from atlas_otm.utils.file_utils import FileUtils
from atlas_otm.utils.tile_calculator import TileCalculator
from atlas_otm.utils.time_utils import coarsen_eta, estimate_remaining
from atlas_otm.exceptions.tile_cache_exceptions import TileError, ValidationError, WriteError

logger = logging.getLogger(__name__)

Event = Union[ProgressEvent, ErrorEvent, SummaryEvent]
TileTask = Tuple[TileRange, int, int]


@dataclass
class FetchOptions:
    """Per-run behaviour of the pipeline"""
    fast: bool = False
    delay_seconds: float = 5.0
    on_error: str = "abort"  # 'abort' or 'continue'
    detailed: bool = False
    max_workers: int = 1

    @classmethod
    def from_config(cls, config, **overrides) -> "FetchOptions":
        options = cls(
            delay_seconds=config['delay_seconds'],
            on_error=config['on_error'],
            max_workers=config['max_workers'],
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    def validate(self) -> None:
        if self.on_error not in ("abort", "continue"):
            raise ValidationError(f"Unknown error policy '{self.on_error}'")
        if self.max_workers < 1:
            raise ValidationError("max_workers must be at least 1")
        if self.delay_seconds < 0:
            raise ValidationError("delay_seconds must not be negative")


class CancellationToken:
    """Cooperative stop signal, checked between tiles"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout; returns early (True) once cancelled"""
        return self._event.wait(timeout)


class TileFetchPipeline:
    """Fetches every tile of a bounding box into the cache, one event per tile"""

    def __init__(self, fetcher: ITileFetcher, error_log: Optional[ErrorLog] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.fetcher = fetcher
        self.error_log = error_log
        self.clock = clock

    def plan(self, bbox: BoundingBox, tiers: Sequence[str]) -> List[TileRange]:
        """Validate the request and compute one tile range per tier"""
        return TileCalculator.tile_ranges_for_bbox(bbox, tiers)

    def run(self, bbox: BoundingBox, tiers: Sequence[str], cache_root: str,
            options: Optional[FetchOptions] = None,
            cancel_token: Optional[CancellationToken] = None) -> Iterator[Event]:
        """Validate eagerly, then return a lazy iterator of events.

        The iterator ends with a SummaryEvent, or raises the FetchError /
        WriteError of the first failing tile under the 'abort' policy.
        """
        options = options or FetchOptions()
        options.validate()
        ranges = self.plan(bbox, tiers)
        token = cancel_token or CancellationToken()

        total = sum(r.count for r in ranges)
        if total <= 0:
            raise ValidationError("Bounding box covers no tiles")

        logger.info("Fetching %d tiles across tiers %s into %s",
                    total, ", ".join(r.tier for r in ranges), cache_root)
        if options.max_workers > 1:
            return self._iterate_pooled(ranges, total, cache_root, options, token)
        return self._iterate_sequential(ranges, total, cache_root, options, token)

    def run_to_sink(self, sink: IProgressSink, *args, **kwargs) -> SummaryEvent:
        """Run and forward every event to sink; returns the summary"""
        summary = None
        for event in self.run(*args, **kwargs):
            sink.emit(event)
            if isinstance(event, SummaryEvent):
                summary = event
        return summary

    @staticmethod
    def _tiles(ranges: List[TileRange]) -> Iterator[TileTask]:
        for tile_range in ranges:
            for x, y in tile_range.tiles():
                yield tile_range, x, y

    def _fetch_and_store(self, cache_root: str, tile_range: TileRange, x: int, y: int) -> Tuple[int, float]:
        tile_start = self.clock()
        try:
            FileUtils.ensure_directory(cache_root, tile_range.tier)
        except OSError as e:
            raise WriteError(f"Cannot create cache directory for tier {tile_range.tier}: {e}",
                             tier=tile_range.tier, x=x, y=y) from e

        try:
            content = self.fetcher.fetch_tile(tile_range.zoom, x, y)
        except TileError as e:
            e.tier, e.x, e.y = tile_range.tier, x, y
            raise

        path = FileUtils.resolve_path(cache_root, tile_range.tier, x, y)
        try:
            nbytes = FileUtils.write_tile(path, content)
        except OSError as e:
            raise WriteError(f"Cannot write tile {path}: {e}",
                             tier=tile_range.tier, x=x, y=y) from e
        return nbytes, self.clock() - tile_start

    def _record_failure(self, error: TileError) -> None:
        if self.error_log is not None:
            try:
                self.error_log.record(error.tier, error.x, error.y, error)
            except OSError as e:
                logger.error("Could not append to error log %s: %s", self.error_log.path, e)

    def _progress_event(self, progress: FetchProgress, task: TileTask,
                        duration: float, options: FetchOptions) -> ProgressEvent:
        tile_range, x, y = task
        elapsed = self.clock() - progress.start_time
        remaining = estimate_remaining(elapsed, progress.processed_tiles, progress.total_tiles)
        return ProgressEvent(
            tier=tile_range.tier,
            x=x,
            y=y,
            processed_tiles=progress.processed_tiles,
            total_tiles=progress.total_tiles,
            percent=progress.percent,
            time_per_tile=round(duration, 2),
            tiles_per_second=round(progress.processed_tiles / elapsed, 2) if elapsed > 0 else 0.0,
            eta=coarsen_eta(remaining),
            bytes_transferred=progress.bytes_transferred if options.detailed else None,
        )

    def _settle(self, progress: FetchProgress, task: TileTask, options: FetchOptions,
                failures: list, outcome: Optional[Tuple[int, float]] = None,
                error: Optional[TileError] = None) -> Tuple[FetchProgress, List[Event]]:
        """Fold one finished tile into the counters; re-raises under 'abort'"""
        tile_range, x, y = task
        events: List[Event] = []
        if error is not None:
            self._record_failure(error)
            if options.on_error == "abort":
                logger.error("Error processing tile at %s, %s (%s): %s",
                             x, y, tile_range.tier, error)
                raise error
            logger.warning("Skipping tile at %s, %s (%s): %s", x, y, tile_range.tier, error)
            failures.append({"tier": tile_range.tier, "x": x, "y": y, "error": str(error)})
            progress = progress.advance(failed=True)
            events.append(ErrorEvent(tier=tile_range.tier, x=x, y=y, error=str(error)))
            duration = 0.0
        else:
            nbytes, duration = outcome
            progress = progress.advance(nbytes)
        events.append(self._progress_event(progress, task, duration, options))
        return progress, events

    def _summary(self, progress: FetchProgress, failures: list,
                 token: CancellationToken) -> SummaryEvent:
        elapsed = self.clock() - progress.start_time
        complete = progress.processed_tiles >= progress.total_tiles
        status = "cancelled" if token.cancelled and not complete else "completed"
        if status == "cancelled":
            logger.info("Run cancelled after %d/%d tiles",
                        progress.processed_tiles, progress.total_tiles)
        return SummaryEvent(
            status=status,
            total_tiles=progress.total_tiles,
            processed_tiles=progress.processed_tiles,
            failed_tiles=progress.failed_tiles,
            elapsed_seconds=round(elapsed, 2),
            average_time_per_tile=round(elapsed / progress.processed_tiles, 2)
            if progress.processed_tiles else 0.0,
            bytes_transferred=progress.bytes_transferred,
            failures=failures,
        )

    def _iterate_sequential(self, ranges, total, cache_root, options, token) -> Iterator[Event]:
        progress = FetchProgress(total_tiles=total, start_time=self.clock())
        failures: list = []

        for task in self._tiles(ranges):
            if token.cancelled:
                break
            try:
                outcome = self._fetch_and_store(cache_root, *task)
            except TileError as e:
                progress, events = self._settle(progress, task, options, failures, error=e)
            else:
                progress, events = self._settle(progress, task, options, failures, outcome=outcome)
            yield from events

            if not options.fast and options.delay_seconds > 0 and progress.remaining_tiles > 0:
                token.wait(options.delay_seconds)

        yield self._summary(progress, failures, token)

    def _iterate_pooled(self, ranges, total, cache_root, options, token) -> Iterator[Event]:
        """Bounded concurrent fetches; events still come out in tile order"""
        progress = FetchProgress(total_tiles=total, start_time=self.clock())
        failures: list = []
        tasks = self._tiles(ranges)
        prepared_tiers = set()
        pending = deque()

        with ThreadPoolExecutor(max_workers=options.max_workers) as executor:
            def submit_next() -> bool:
                if token.cancelled:
                    return False
                task = next(tasks, None)
                if task is None:
                    return False
                tier = task[0].tier
                if tier not in prepared_tiers:
                    try:
                        FileUtils.ensure_directory(cache_root, tier)
                    except OSError as e:
                        # surfaced again as a WriteError by the tile itself
                        logger.debug("Cannot prepare tier directory %s: %s", tier, e)
                    prepared_tiers.add(tier)
                pending.append((task, executor.submit(self._fetch_and_store, cache_root, *task)))
                return True

            for _ in range(options.max_workers):
                if not submit_next():
                    break

            try:
                while pending:
                    task, future = pending.popleft()
                    try:
                        outcome = future.result()
                    except TileError as e:
                        progress, events = self._settle(progress, task, options, failures, error=e)
                    else:
                        progress, events = self._settle(progress, task, options, failures,
                                                        outcome=outcome)
                    yield from events

                    if not options.fast and options.delay_seconds > 0 and progress.remaining_tiles > 0:
                        token.wait(options.delay_seconds)
                    submit_next()
            finally:
                for _, future in pending:
                    future.cancel()

        yield self._summary(progress, failures, token)
