# spt/batch.py
"""
Checkpointed batch processor shared by the discovery and provisioning workflows.

A run pages through a candidate source one item at a time:

    SCANNING -> PROCESSING -> (CHECKPOINTING ->) SCANNING ... -> COMPLETED | ABORTED

Candidates are skipped while the resume matcher is still looking for the
checkpointed item, then filtered, then handed to `apply`. Every `cadence`
successes a checkpoint is written (best effort). An item failure either aborts
the run (fail-fast) or is counted and skipped (`ignore_errors`).
"""

from typing import Any, Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from .checkpoint import CheckpointStore
from .errors import CheckpointIOError, ItemError
from .filters import filter_mismatches
from .logger import JobLogger
from .models import AccountFilter, AccountSnapshot, BatchOutcome, BatchResult, BatchState
from .resume import ResumeDecision, ResumeMatcher

I = TypeVar("I")


class CandidateSource(Protocol[I]):
    def candidate(self, offset: int) -> Optional[I]:
        """Item at `offset` on the current page, None when the page is exhausted."""
        ...

    def next_page(self) -> bool:
        """Go to the next page. False when there is none."""
        ...


class ListSource(Generic[I]):
    """A single logical page backed by a sequence."""

    def __init__(self, items: Sequence[I]):
        self.items = items

    def candidate(self, offset: int) -> Optional[I]:
        if offset < len(self.items):
            return self.items[offset]
        return None

    def next_page(self) -> bool:
        return False


class BatchProcessor(Generic[I]):

    def __init__(
        self,
        name: str,
        source: CandidateSource,
        snapshot_of: Callable[[I], AccountSnapshot],
        apply: Callable[[I, AccountSnapshot], Optional[AccountSnapshot]],
        store: CheckpointStore,
        checkpoint_key: str,
        checkpoint_value: Callable[[AccountSnapshot, List[AccountSnapshot]], Any],
        logger: JobLogger,
        cadence: int = 1,
        ignore_errors: bool = False,
        account_filter: Optional[AccountFilter] = None,
        resume_from: Optional[AccountSnapshot] = None,
        seed_results: Optional[List[AccountSnapshot]] = None,
    ):
        if cadence < 1:
            raise ValueError("checkpoint cadence must be at least 1")
        self.name = name
        self.source = source
        self.snapshot_of = snapshot_of
        self.apply = apply
        self.store = store
        self.checkpoint_key = checkpoint_key
        self.checkpoint_value = checkpoint_value
        self.logger = logger
        self.cadence = cadence
        self.ignore_errors = ignore_errors
        self.account_filter = account_filter
        self.matcher = ResumeMatcher(resume_from)

        self.state = BatchState.SCANNING
        self.results: List[AccountSnapshot] = list(seed_results or [])
        self.had_errors = False
        self.successes = 0
        self.since_checkpoint = 0
        self.skipped = 0
        self.failed = 0

    def run(self) -> BatchResult:
        self.logger.log(f"{self.name}_start", True, f"batch '{self.name}' started", extra={
            "resume_from": self.matcher.checkpoint.model_dump() if self.matcher.checkpoint else None,
            "cadence": self.cadence,
            "ignore_errors": self.ignore_errors,
        })

        offset = 0
        page = 1
        while self.state is not BatchState.ABORTED:
            self.state = BatchState.SCANNING
            try:
                item = self.source.candidate(offset)
                if item is None:
                    if not self.source.next_page():
                        self.state = BatchState.COMPLETED
                        break
                    page += 1
                    offset = 0
                    self.logger.log(f"{self.name}_page", True, f"go to search results page {page}")
                    continue
            except ItemError as exc:
                self.had_errors = True
                self.logger.error(f"{self.name}_source_failed",
                                  f"couldn't read candidates on page {page} at offset {offset}: {exc}")
                self.state = BatchState.ABORTED
                break

            offset += 1
            self._handle(item)

        return self._finish()

    def _handle(self, item: I):
        try:
            snapshot = self.snapshot_of(item)
        except ItemError as exc:
            self._fail(str(item), exc)
            return

        decision = self.matcher.decide(snapshot)
        if decision is ResumeDecision.SKIP:
            self.skipped += 1
            self.logger.debug(f"{self.name}_skip", f"skip {snapshot}, looking for checkpointed account")
            return
        if decision is ResumeDecision.RESUME:
            self.skipped += 1
            self.logger.log(f"{self.name}_resume", True, f"resume process after {snapshot}")
            return

        if self.account_filter is not None:
            mismatches = filter_mismatches(snapshot, self.account_filter)
            if mismatches:
                self.skipped += 1
                self.logger.log(f"{self.name}_filtered", True,
                                f"account {snapshot} doesn't match filter options, skip",
                                extra={"mismatches": mismatches})
                return

        self.state = BatchState.PROCESSING
        self.logger.log(f"{self.name}_process", True, f"processing account {snapshot}")
        try:
            collected = self.apply(item, snapshot)
        except ItemError as exc:
            self._fail(str(snapshot), exc)
            return

        self.successes += 1
        self.since_checkpoint += 1
        if collected is not None:
            self.results.append(collected)
            self.logger.log(f"{self.name}_collected", True, f"add account {collected}")

        if self.since_checkpoint >= self.cadence:
            self._checkpoint(snapshot)

    def _checkpoint(self, last: AccountSnapshot):
        self.state = BatchState.CHECKPOINTING
        try:
            self.store.save(self.checkpoint_key, self.checkpoint_value(last, self.results))
        except CheckpointIOError as exc:
            # counter is kept so the next success retries the write
            self.logger.error(f"{self.name}_checkpoint", f"cannot update progress cache: {exc}")
            return
        self.since_checkpoint = 0
        self.logger.log(f"{self.name}_checkpoint", True,
                        f"progress cache '{self.checkpoint_key}' has been updated",
                        extra={"successes": self.successes})

    def _fail(self, label: str, exc: ItemError):
        self.had_errors = True
        self.failed += 1
        extra = {"error": type(exc).__name__}
        if getattr(exc, "step", ""):
            extra["step"] = exc.step
        self.logger.error(f"{self.name}_item_failed", f"{label}: {exc}", extra=extra)
        if not self.ignore_errors:
            self.logger.error(f"{self.name}_interrupted", "process has been interrupted due error")
            self.state = BatchState.ABORTED

    def _finish(self) -> BatchResult:
        if self.state is BatchState.COMPLETED:
            succeeded = not self.had_errors or self.ignore_errors
        else:
            succeeded = False

        if not self.matcher.resumed:
            self.logger.error(f"{self.name}_resume_missed",
                              f"checkpointed account {self.matcher.checkpoint} wasn't found, nothing processed")

        if self.state is BatchState.ABORTED:
            message = "interrupt process due error(s). check logs for details."
        elif self.had_errors:
            message = "batch finished with partial failures"
        else:
            message = "batch finished"
        self.logger.log(f"{self.name}_finish", succeeded, message, extra={
            "state": self.state.value,
            "processed": self.successes,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": len(self.results),
        })

        return BatchResult(
            outcome=BatchOutcome(succeeded=succeeded, had_errors=self.had_errors),
            state=self.state,
            results=self.results,
            processed=self.successes,
            skipped=self.skipped,
            failed=self.failed,
        )
