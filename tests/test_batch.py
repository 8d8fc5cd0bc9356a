"""Tests for the checkpointed batch processor."""

import pytest
from conftest import MemoryCheckpointStore, snap

from spt.batch import BatchProcessor, ListSource
from spt.errors import CollaboratorError, ManifestReferenceError
from spt.models import AccountFilter, BatchState

ITEMS = [snap("Ann"), snap("Bob"), snap("Cid"), snap("Dan"), snap("Eve")]


class PagedSource:
    def __init__(self, pages, fail_at=None):
        self.pages = pages
        self.page = 0
        self.fail_at = fail_at
        self.requests = []

    def candidate(self, offset):
        self.requests.append((self.page, offset))
        if self.fail_at == (self.page, offset):
            raise CollaboratorError("list vanished")
        items = self.pages[self.page]
        return items[offset] if offset < len(items) else None

    def next_page(self):
        if self.page + 1 < len(self.pages):
            self.page += 1
            return True
        return False


class Recorder:
    """apply() that records calls and fails for chosen items."""

    def __init__(self, failing=(), collect=False):
        self.failing = set(failing)
        self.collect = collect
        self.calls = []

    def __call__(self, item, snapshot):
        self.calls.append(snapshot)
        if snapshot in self.failing:
            raise CollaboratorError(f"cannot process {snapshot.login}")
        return snapshot if self.collect else None


def _processor(logger, store=None, source=None, apply=None, **kwargs):
    kwargs.setdefault("checkpoint_value", lambda last, results: last)
    snapshot_of = kwargs.pop("snapshot_of", lambda item: item)
    return BatchProcessor(
        name="test",
        source=source or ListSource(ITEMS),
        snapshot_of=snapshot_of,
        apply=apply or Recorder(),
        store=store if store is not None else MemoryCheckpointStore(),
        checkpoint_key="progress",
        logger=logger,
        **kwargs,
    )


class TestErrorPolicy:

    def test_all_succeed(self, logger):
        apply = Recorder()
        result = _processor(logger, apply=apply).run()

        assert apply.calls == ITEMS
        assert result.state is BatchState.COMPLETED
        assert result.outcome.succeeded and not result.outcome.had_errors
        assert result.processed == 5

    def test_fail_fast_stops_after_failing_item(self, logger):
        apply = Recorder(failing={ITEMS[2]})
        result = _processor(logger, apply=apply, ignore_errors=False).run()

        assert apply.calls == ITEMS[:3]
        assert result.state is BatchState.ABORTED
        assert not result.outcome.succeeded
        assert result.outcome.had_errors
        assert result.failed == 1

    def test_ignore_errors_processes_everything(self, logger):
        apply = Recorder(failing={ITEMS[2]})
        result = _processor(logger, apply=apply, ignore_errors=True).run()

        assert apply.calls == ITEMS
        assert result.state is BatchState.COMPLETED
        assert result.outcome.succeeded
        assert result.outcome.had_errors
        assert result.processed == 4
        assert result.failed == 1

    def test_each_failure_is_logged(self, logger):
        apply = Recorder(failing={ITEMS[1], ITEMS[3]})
        _processor(logger, apply=apply, ignore_errors=True).run()

        failures = [e for e in logger.entries if e["step"] == "test_item_failed"]
        assert len(failures) == 2
        assert all(not e["success"] for e in failures)
        assert "bob" in failures[0]["message"]

    def test_fail_fast_does_not_fetch_more_pages(self, logger):
        source = PagedSource([[ITEMS[0], ITEMS[1]], [ITEMS[2]]])
        apply = Recorder(failing={ITEMS[1]})
        result = _processor(logger, source=source, apply=apply).run()

        assert result.state is BatchState.ABORTED
        assert source.page == 0
        assert source.requests == [(0, 0), (0, 1)]

    def test_snapshot_failure_counts_as_item_failure(self, logger):
        def snapshot_of(item):
            if item == ITEMS[1]:
                raise ManifestReferenceError("client wasn't found by id 9")
            return item

        apply = Recorder()
        result = _processor(logger, apply=apply, snapshot_of=snapshot_of, ignore_errors=True).run()

        assert ITEMS[1] not in apply.calls
        assert len(apply.calls) == 4
        assert result.outcome.had_errors and result.outcome.succeeded

    def test_source_failure_aborts_even_when_ignoring_errors(self, logger):
        source = PagedSource([ITEMS[:2], ITEMS[2:]], fail_at=(1, 0))
        result = _processor(logger, source=source, ignore_errors=True).run()

        assert result.state is BatchState.ABORTED
        assert not result.outcome.succeeded
        assert result.processed == 2

    def test_failure_log_names_the_ui_step(self, logger):
        def apply(item, snapshot):
            raise CollaboratorError("tab not found", step="permissions_tab")

        _processor(logger, apply=apply).run()

        failure = next(e for e in logger.entries if e["step"] == "test_item_failed")
        assert failure["extra"] == {"error": "CollaboratorError", "step": "permissions_tab"}


class TestCheckpointCadence:

    def test_writes_every_k_successes(self, logger):
        store = MemoryCheckpointStore()
        _processor(logger, store=store, cadence=2).run()

        assert store.writes == [
            ("progress", ITEMS[1].model_dump()),
            ("progress", ITEMS[3].model_dump()),
        ]

    def test_failures_do_not_count_towards_cadence(self, logger):
        store = MemoryCheckpointStore()
        apply = Recorder(failing={ITEMS[1]})
        _processor(logger, store=store, apply=apply, cadence=2, ignore_errors=True).run()

        assert [value["name"] for _, value in store.writes] == ["Cid", "Eve"]

    def test_collection_checkpoint_holds_all_results(self, logger):
        store = MemoryCheckpointStore()
        apply = Recorder(collect=True)
        _processor(logger, store=store, apply=apply, cadence=3,
                   checkpoint_value=lambda last, results: list(results)).run()

        assert len(store.writes) == 1
        assert [a["name"] for a in store.writes[0][1]] == ["Ann", "Bob", "Cid"]

    def test_write_failure_is_logged_and_retried(self, logger):
        store = MemoryCheckpointStore(fail_saves=1)
        result = _processor(logger, store=store, cadence=2).run()

        assert result.state is BatchState.COMPLETED
        assert result.outcome.succeeded and not result.outcome.had_errors
        # failed write after Bob is retried after Cid
        assert [value["name"] for _, value in store.writes] == ["Cid", "Eve"]
        assert any(e["step"] == "test_checkpoint" and not e["success"] for e in logger.entries)

    def test_cadence_must_be_positive(self, logger):
        with pytest.raises(ValueError):
            _processor(logger, cadence=0)


class TestScanning:

    def test_pages_are_walked_with_offset_reset(self, logger):
        source = PagedSource([ITEMS[:2], ITEMS[2:4], ITEMS[4:]])
        apply = Recorder()
        result = _processor(logger, source=source, apply=apply).run()

        assert apply.calls == ITEMS
        assert (1, 0) in source.requests and (2, 0) in source.requests
        assert result.state is BatchState.COMPLETED

    def test_empty_source_completes(self, logger):
        result = _processor(logger, source=ListSource([])).run()

        assert result.state is BatchState.COMPLETED
        assert result.outcome.succeeded

    def test_resume_skips_up_to_checkpoint(self, logger):
        apply = Recorder()
        result = _processor(logger, apply=apply, resume_from=ITEMS[1]).run()

        assert apply.calls == ITEMS[2:]
        assert result.skipped == 2

    def test_resume_across_pages(self, logger):
        source = PagedSource([ITEMS[:2], ITEMS[2:]])
        apply = Recorder()
        _processor(logger, source=source, apply=apply, resume_from=ITEMS[2]).run()

        assert apply.calls == ITEMS[3:]

    def test_resume_target_missing_processes_nothing(self, logger):
        apply = Recorder()
        result = _processor(logger, apply=apply, resume_from=snap("Zed")).run()

        assert apply.calls == []
        assert result.state is BatchState.COMPLETED
        assert any(e["step"] == "test_resume_missed" for e in logger.entries)

    def test_filter_rejects_without_apply(self, logger):
        items = [snap("Ann", client="Acme"), snap("Bob", client="Other"), snap("Cid", client="Acme")]
        apply = Recorder()
        result = _processor(logger, source=ListSource(items), apply=apply,
                            account_filter=AccountFilter(client_name="Acme")).run()

        assert apply.calls == [items[0], items[2]]
        assert result.skipped == 1

    def test_filter_applies_only_after_resume(self, logger):
        items = [snap("Ann", client="Other"), snap("Bob", client="Acme"), snap("Cid", client="Other"),
                 snap("Dan", client="Acme")]
        apply = Recorder()
        _processor(logger, source=ListSource(items), apply=apply, resume_from=items[0],
                   account_filter=AccountFilter(client_name="Acme")).run()

        assert apply.calls == [items[1], items[3]]

    def test_seed_results_are_kept(self, logger):
        apply = Recorder(collect=True)
        result = _processor(logger, apply=apply, seed_results=[snap("Old")], resume_from=ITEMS[3]).run()

        assert [a.name for a in result.results] == ["Old", "Eve"]
