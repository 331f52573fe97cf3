"""Build fan-out: one independent task per target platform.

The coordinator is a barrier, not a race. Every job runs to a terminal state
and a failing platform never cancels its siblings. Per-job failures are
recorded on the job and never raised past ``run_fanout``. The only way to stop
in-flight jobs is the abort event, which builders observe cooperatively.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait

from relflow.core.result import Err
from relflow.services.release.builders import BuildRequest, PlatformBuilder
from relflow.services.release.model import BuildJob, BuildStatus, FailureReason, FanoutResult

logger = logging.getLogger(__name__)


def _run_job(
    job: BuildJob,
    builder: PlatformBuilder,
    timeout_seconds: float | None,
    cancel: threading.Event,
) -> None:
    if cancel.is_set():
        job.cancel("aborted before start")
        logger.info("%s: cancelled before start", job.platform)
        return

    job.start()
    started = time.monotonic()
    logger.debug("%s: running", job.platform)

    try:
        result = builder.build(
            BuildRequest(
                platform=job.platform,
                version=job.version,
                timeout_seconds=timeout_seconds,
                cancel=cancel,
            )
        )
    except Exception as e:  # noqa: BLE001
        job.fail(
            FailureReason.ERROR,
            f"builder raised {type(e).__name__}: {e}",
            duration_seconds=time.monotonic() - started,
        )
        logger.warning("%s: builder raised: %s", job.platform, e)
        return

    elapsed = time.monotonic() - started
    if isinstance(result, Err):
        failure = result.error
        if failure.reason is FailureReason.CANCELLED:
            job.cancel(failure.detail, duration_seconds=elapsed)
        else:
            job.fail(failure.reason, failure.detail, duration_seconds=elapsed)
        logger.warning("%s: %s (%s)", job.platform, job.status, failure.reason)
        return

    if timeout_seconds is not None and elapsed > timeout_seconds:
        # Builders that ignore the deadline still get recorded as timed out.
        job.fail(
            FailureReason.TIMEOUT,
            f"finished after the {timeout_seconds}s deadline ({elapsed:.1f}s)",
            duration_seconds=elapsed,
        )
        logger.warning("%s: timed out", job.platform)
        return

    job.succeed(result.value, duration_seconds=elapsed)
    logger.info("%s: succeeded with %d artifact(s)", job.platform, len(result.value))


def aggregate_status(jobs: Sequence[BuildJob], *, cancelled: bool) -> BuildStatus:
    if all(j.status is BuildStatus.SUCCEEDED for j in jobs):
        return BuildStatus.SUCCEEDED
    if cancelled:
        return BuildStatus.CANCELLED
    return BuildStatus.FAILED


def run_fanout(
    *,
    version: str,
    platforms: Sequence[str],
    builder: PlatformBuilder,
    timeout_seconds: float | None,
    max_parallel: int,
    cancel: threading.Event | None = None,
) -> FanoutResult:
    """Dispatch one BuildJob per platform and wait for all of them.

    Args:
        version: Version string passed to every build.
        platforms: Target platform identifiers; duplicates are dropped.
        builder: Builds a single platform.
        timeout_seconds: Per-job deadline (None for no limit).
        max_parallel: Upper bound on concurrently running jobs.
        cancel: Abort signal shared with every job. Ctrl-C while waiting sets it.

    Returns:
        The aggregate: SUCCEEDED only if every job succeeded, CANCELLED if the
        abort signal fired, FAILED otherwise. Successful artifacts are kept in
        every case.
    """
    unique = list(dict.fromkeys(platforms))
    if not unique:
        raise ValueError("run_fanout needs at least one platform")
    if max_parallel < 1:
        raise ValueError("max_parallel must be >= 1")

    abort = cancel if cancel is not None else threading.Event()
    jobs = tuple(BuildJob(platform=p, version=version) for p in unique)

    workers = min(max_parallel, len(jobs))
    logger.info("dispatching %d build(s) for %s (parallel=%d)", len(jobs), version, workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="relflow-build") as pool:
        futures = [pool.submit(_run_job, job, builder, timeout_seconds, abort) for job in jobs]
        try:
            wait(futures)
        except KeyboardInterrupt:
            logger.warning("abort requested; asking %d build(s) to stop", len(jobs))
            abort.set()
            wait(futures)

    status = aggregate_status(jobs, cancelled=abort.is_set())
    return FanoutResult(version=version, status=status, jobs=jobs)
