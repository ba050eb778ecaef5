"""Batch checking of a whole portal and the watcher loop.

The batch runner fetches metadata documents from a CKAN portal, checks
them and records the results in the tracking store. Work is fanned out
over the Scheduler; one store transaction covers a whole run, so a failing
worker leaves the store as it was before the run.

The watcher loop (serve) repeats two jobs:

- data check: every day at 23:00, plus once at startup. Checks the
  datasets changed since the last run (all datasets on the first run).
- URL check: every Sunday at 21:00. Re-probes the links recorded as
  fetchable by the latest check of every dataset.

Between jobs it writes a heartbeat to the store every heartbeat interval.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from functools import partial
from typing import TypeVar

from ogdat_cli.document import MinimalMetadata, parse_document
from ogdat_cli.errors import BatchWorkerError, PortalError, UnknownSpecVersionError
from ogdat_cli.messages import DOCUMENT_LEVEL_ID, CheckFlag, CheckMessage
from ogdat_cli.portal import Portal
from ogdat_cli.probe import UrlProbe
from ogdat_cli.schedule import Scheduler, WorkState, wait
from ogdat_cli.spec.registry import resolve_version
from ogdat_cli.store import DataUrl, TrackingStore
from ogdat_cli.validation.engine import CheckEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

APP_ID = "ogdat-watcher"

DATA_CHECK_HOUR = 23
URL_CHECK_HOUR = 21
URL_CHECK_WEEKDAY = 6  # Sunday

NO_SCHEMA = "no schema given, the metadata cannot be checked"
NO_CHECKER = "no check is implemented for metadata version {version}"


@dataclass
class BatchContext:
    """Collaborators shared by all workers of a run."""

    portal: Portal
    store: TrackingStore
    engine: CheckEngine
    probe: UrlProbe
    workers: int = 4
    # Seconds between heartbeats
    heartbeat_interval: float = 3600.0
    follow_links: bool = True
    scheduler: Scheduler = field(init=False)

    def __post_init__(self) -> None:
        self.scheduler = Scheduler(self.workers)


def _check_one(ctx: BatchContext, ckan_id: str, data: bytes) -> tuple[int, list[CheckMessage]]:
    minimal = MinimalMetadata.from_json(data)
    dataset_id, is_new = ctx.store.insert_or_update_metadata_info(ckan_id, minimal)

    number = minimal.version
    if not number:
        logger.info("No metadata schema given for %s, skipping", ckan_id)
        return dataset_id, [CheckMessage(CheckFlag.INFO, DOCUMENT_LEVEL_ID, NO_SCHEMA)]
    try:
        version = resolve_version(number)
    except UnknownSpecVersionError:
        logger.info("Metadata version %s of %s has no checker", number, ckan_id)
        return dataset_id, [
            CheckMessage(CheckFlag.INFO, DOCUMENT_LEVEL_ID, NO_CHECKER.format(version=number))
        ]

    document = parse_document(data, source=ckan_id)
    return dataset_id, ctx.engine.check(document, version, follow_links=ctx.follow_links)


def process_ids(ctx: BatchContext, ckan_ids: Sequence[str]) -> int:
    """Fetch, check and record datasets, in order.

    Datasets the portal answers 403 for are marked deleted and skipped.

    Returns:
        Number of datasets checked.

    Raises:
        PortalError: If a document cannot be fetched for another reason.
        DocumentParseError: If a document is not a JSON object.
    """
    total = len(ckan_ids)
    checked = 0
    for index, ckan_id in enumerate(ckan_ids, start=1):
        logger.info("%4d / %4d : processing %s", index, total, ckan_id)
        try:
            data = ctx.portal.fetch_document(ckan_id)
        except PortalError as err:
            if not err.is_deleted:
                raise
            logger.info("Dataset %s is gone, marking it deleted", ckan_id)
            ctx.store.mark_deleted(ckan_id)
            continue

        dataset_id, messages = _check_one(ctx, ckan_id, data)
        ctx.store.protocol_check(dataset_id, True, messages)
        checked += 1
    logger.info("Worker finished processing %d entries", total)
    return checked


def process_data_urls(ctx: BatchContext, groups: Sequence[list[DataUrl]]) -> int:
    """Re-probe stored links and record one message per link.

    Returns:
        Number of links probed.
    """
    probed = 0
    for index, urls in enumerate(groups, start=1):
        logger.info("%4d / %4d : dataset %d", index, len(groups), urls[0].dataset_id)
        messages: list[CheckMessage] = []
        for data_url in urls:
            reachable, reason = ctx.probe.fetch_head(data_url.url)
            if reachable:
                kind = CheckFlag.INFO | CheckFlag.FETCHABLE_URL | CheckFlag.FETCH_SUCCESS
                text = f"link is reachable: '{data_url.url}'"
            else:
                kind = CheckFlag.ERROR | CheckFlag.FETCHABLE_URL | CheckFlag.NO_DATA_AT_URL
                text = f"no data at '{data_url.url}': {reason}"
            messages.append(CheckMessage(kind, data_url.field_id, text, data_url.url))
            probed += 1
        ctx.store.protocol_check(urls[0].dataset_id, False, messages)
    logger.info("Worker finished probing %d links", probed)
    return probed


def _run(ctx: BatchContext, work: Callable[[list[T]], object], items: Sequence[T]) -> None:
    """Fan items out in one store transaction; raise on the first worker error.

    On error the transaction is rolled back once every worker has stopped,
    so no write of the failed run reaches the store.
    """
    with ctx.store.transaction():
        logger.info("Doing %d jobs on %d workers", len(items), ctx.scheduler.workers)
        results = ctx.scheduler.schedule(work, items)
        outcome = wait(
            results,
            ctx.heartbeat_interval,
            on_tick=lambda: ctx.store.heartbeat(APP_ID),
        )
        if outcome.state is WorkState.ERROR and outcome.error is not None:
            if outcome.settled is not None:
                logger.info("Waiting for the remaining workers before rolling back")
                while not outcome.settled.wait(ctx.heartbeat_interval):
                    ctx.store.heartbeat(APP_ID)
            raise BatchWorkerError(outcome.error)


def check_data(ctx: BatchContext) -> int:
    """Check every dataset changed since the last run.

    Returns:
        Number of dataset ids scheduled.

    Raises:
        BatchWorkerError: If any worker failed; the store is rolled back.
        PortalError: If the list of ids cannot be fetched.
    """
    hit = ctx.store.last_hit()
    if hit is None:
        logger.info("No checkpoint in the store, getting all datasets")
        ids = ctx.portal.list_all_ids()
    else:
        logger.info("Getting datasets changed since %s", hit)
        ids = ctx.portal.list_changed_ids(hit, ctx.workers)

    if ids:
        _run(ctx, partial(process_ids, ctx), ids)
        logger.info("Finished processing %d datasets", len(ids))
    return len(ids)


def check_urls(ctx: BatchContext) -> int:
    """Re-probe the fetchable links of the latest check of every dataset.

    Returns:
        Number of datasets whose links were probed.

    Raises:
        BatchWorkerError: If any worker failed; the store is rolled back.
    """
    groups = ctx.store.data_urls()
    if groups:
        _run(ctx, partial(process_data_urls, ctx), groups)
        logger.info("Finished checking links of %d datasets", len(groups))
    return len(groups)


# =============================================================================
# Watcher loop
# =============================================================================


def next_data_check(now: datetime) -> datetime:
    """Next 23:00 strictly after now, in now's time zone."""
    candidate = now.replace(hour=DATA_CHECK_HOUR, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_url_check(now: datetime) -> datetime:
    """Next Sunday 21:00 strictly after now, in now's time zone."""
    candidate = now.replace(hour=URL_CHECK_HOUR, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(URL_CHECK_WEEKDAY - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def serve(
    ctx: BatchContext,
    zone: tzinfo,
    idle_shutdown: timedelta | None = None,
    *,
    clock: Callable[[tzinfo], datetime] = datetime.now,
    sleep: Callable[[float], object] = time.sleep,
) -> None:
    """Run the watcher loop.

    Returns only when idle_shutdown is given and both jobs are further
    ahead than that; errors of a job propagate.

    Args:
        ctx: Collaborators of the runs.
        zone: Time zone the schedule is expressed in.
        idle_shutdown: Stop when the next job is further ahead than this.
        clock: Returns the current time in a zone.
        sleep: Waits the given number of seconds.
    """
    logger.info("Processing relative to time zone %s", zone)
    now = clock(zone)
    when_data = now
    when_url = next_url_check(now)

    while True:
        now = clock(zone)
        if now >= when_data:
            check_data(ctx)
            when_data = next_data_check(clock(zone))
        if now >= when_url:
            check_urls(ctx)
            when_url = next_url_check(clock(zone))

        ctx.store.heartbeat(APP_ID)
        now = clock(zone)
        data_diff = when_data - now
        url_diff = when_url - now
        logger.info("Next data check in %s, next URL check in %s", data_diff, url_diff)

        if idle_shutdown is not None and data_diff > idle_shutdown and url_diff > idle_shutdown:
            logger.info("Next activity is more than %s ahead, terminating", idle_shutdown)
            return

        pause = min(ctx.heartbeat_interval, data_diff.total_seconds(), url_diff.total_seconds())
        sleep(max(pause, 0.0))
