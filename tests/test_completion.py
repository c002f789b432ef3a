import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine

import mockexam.services.attempts as attempts_module
from mockexam.core.database import make_session_factory
from mockexam.core.errors import FailedPrecondition, Internal, InvalidArgument, NotFound, Unauthenticated
from mockexam.models.domain import AttemptStatus
from mockexam.models.orm import AttemptRecord
from mockexam.repositories import AttemptRepository, UserStatsRepository
from mockexam.services import lifecycle
from mockexam.services.attempts import AttemptService
from tests.conftest import make_question


def stored_stats(session_factory, user_id="user-1", exam_id="pcd"):
    with session_factory() as db:
        return UserStatsRepository(db).find(user_id, exam_id)


def stored_attempt(session_factory, attempt_id, user_id="user-1"):
    with session_factory() as db:
        return AttemptRepository(db).find(user_id, attempt_id)


def test_end_to_end_completion(service, session_factory, exam_set):
    attempt = service.start_attempt("user-1", "pcd", "set1")
    assert attempt.total_questions == 2

    completed = service.complete_attempt("user-1", attempt.id, {"q1": ["a"], "q2": ["c", "b"]})

    assert completed.score == 2
    assert completed.status is AttemptStatus.COMPLETED
    assert stored_attempt(session_factory, attempt.id) == completed

    stats = stored_stats(session_factory)
    assert stats.total_attempts == 1
    assert {name: (s.correct_count, s.total_count, s.accuracy_rate) for name, s in stats.domain_stats.items()} == {
        "Compute": (1, 1, 100),
        "Security": (1, 1, 100),
    }
    assert stats.last_taken_at == completed.completed_at


def test_second_completion_fails_without_side_effects(service, session_factory, exam_set):
    attempt = service.start_attempt("user-1", "pcd", "set1")
    first = service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})

    with pytest.raises(FailedPrecondition):
        service.complete_attempt("user-1", attempt.id, {"q1": ["a"], "q2": ["b", "c"]})

    assert stored_attempt(session_factory, attempt.id) == first
    stats = stored_stats(session_factory)
    assert stats.total_attempts == 1
    assert stats.total_correct == 1


def test_saved_progress_is_scored_at_completion(service, session_factory, seed):
    seed(
        make_question("q1", ["a"]),
        make_question("q2", ["c"]),
        make_question("q3", ["d"]),
    )
    attempt = service.start_attempt("user-1", "pcd", "set1")
    service.save_progress("user-1", attempt.id, 1, {"q2": ["b"]})
    service.save_progress("user-1", attempt.id, 0, {"q1": ["a"]})

    completed = service.complete_attempt("user-1", attempt.id, {"q2": ["c"], "q3": ["d"]})

    assert completed.answers == {"q1": ["a"], "q2": ["c"], "q3": ["d"]}
    assert completed.score == 3


def test_sparse_answers_only_count_answered_questions(service, session_factory, seed):
    seed(*(make_question(f"q{i}", ["a"], domain="Compute") for i in (1, 2, 3)))
    attempt = service.start_attempt("user-1", "pcd", "set1")

    completed = service.complete_attempt("user-1", attempt.id, {"q1": ["a"], "q2": ["a"]})

    assert completed.total_questions == 3
    stats = stored_stats(session_factory)
    assert stats.domain_stats["Compute"].total_count == 2
    assert stats.domain_stats["Compute"].accuracy_rate == 100
    assert stats.total_questions_answered == 3


def test_stats_accumulate_across_attempts(service, session_factory, seed):
    seed(
        make_question("q1", ["a"], domain="Compute"),
        make_question("q2", ["b"], domain="Compute"),
        make_question("q3", ["c"], domain="Compute"),
    )
    first = service.start_attempt("user-1", "pcd", "set1")
    service.complete_attempt("user-1", first.id, {"q1": ["a"], "q2": ["a"]})
    second = service.start_attempt("user-1", "pcd", "set1")
    service.complete_attempt("user-1", second.id, {"q1": ["a"], "q2": ["b"], "q3": ["c"]})

    stats = service.get_user_exam_stats("user-1", "pcd")
    compute = stats.domain_stats["Compute"]
    assert (compute.correct_count, compute.total_count, compute.accuracy_rate) == (4, 5, 80)
    assert stats.total_attempts == 2
    assert stats.total_correct == 4
    assert stats.total_questions_answered == 6
    assert stats.average_score == 66.67


def test_missing_or_foreign_attempt_is_not_found(service, exam_set):
    attempt = service.start_attempt("user-1", "pcd", "set1")

    with pytest.raises(NotFound):
        service.complete_attempt("user-1", "does-not-exist", {})
    with pytest.raises(NotFound):
        service.complete_attempt("user-2", attempt.id, {})


def test_identifiers_and_answers_are_validated(service):
    with pytest.raises(Unauthenticated):
        service.complete_attempt("", "att-1", {})
    with pytest.raises(InvalidArgument):
        service.complete_attempt("user-1", "", {})
    with pytest.raises(InvalidArgument):
        service.complete_attempt("user-1", "att-1", {"q1": "a"})


def test_start_attempt_requires_questions(service, exam_set):
    with pytest.raises(NotFound):
        service.start_attempt("user-1", "pcd", "unknown-set")
    with pytest.raises(InvalidArgument):
        service.start_attempt("user-1", "other-exam", "set1")
    with pytest.raises(Unauthenticated):
        service.start_attempt("", "pcd", "set1")


def test_save_progress_after_completion_fails(service, exam_set):
    attempt = service.start_attempt("user-1", "pcd", "set1")
    service.complete_attempt("user-1", attempt.id, {})

    with pytest.raises(FailedPrecondition):
        service.save_progress("user-1", attempt.id, 1, {"q1": ["a"]})


def test_stats_default_to_empty_record(service):
    stats = service.get_user_exam_stats("user-1", "pcd")

    assert stats.total_attempts == 0
    assert stats.domain_stats == {}
    assert stats.average_score == 0.0


def _interleave(monkeypatch, competitor):
    """Run ``competitor`` (another committed write) the first time the
    orchestrator folds stats, i.e. after its reads and before its writes."""
    real_fold = attempts_module.fold_stats
    calls = {"n": 0}

    def fold(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            competitor()
        return real_fold(*args, **kwargs)

    monkeypatch.setattr(attempts_module, "fold_stats", fold)
    return calls


def test_concurrent_completion_of_same_attempt(service, session_factory, exam_set, monkeypatch):
    attempt = service.start_attempt("user-1", "pcd", "set1")
    winner = {}
    _interleave(monkeypatch, lambda: winner.update(attempt=service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})))

    # the loser's versioned write conflicts, it retries and sees the completed attempt
    with pytest.raises(FailedPrecondition):
        service.complete_attempt("user-1", attempt.id, {"q1": ["a"], "q2": ["b", "c"]})

    assert stored_attempt(session_factory, attempt.id) == winner["attempt"]
    assert winner["attempt"].score == 1
    stats = stored_stats(session_factory)
    assert stats.total_attempts == 1
    assert stats.total_correct == 1
    assert "Security" not in stats.domain_stats


def test_concurrent_first_completions_do_not_lose_updates(service, session_factory, exam_set, monkeypatch):
    first = service.start_attempt("user-1", "pcd", "set1")
    second = service.start_attempt("user-1", "pcd", "set1")
    calls = _interleave(monkeypatch, lambda: service.complete_attempt("user-1", second.id, {"q2": ["b", "c"]}))

    completed = service.complete_attempt("user-1", first.id, {"q1": ["a"]})

    assert completed.score == 1
    # first try, the competitor's own fold, and the retry
    assert calls["n"] == 3
    stats = stored_stats(session_factory)
    assert stats.total_attempts == 2
    assert stats.total_correct == 2
    assert stats.domain_stats["Compute"].total_count == 1
    assert stats.domain_stats["Security"].total_count == 1


def test_concurrent_updates_to_existing_stats_are_serialized(service, session_factory, exam_set, monkeypatch):
    warmup = service.start_attempt("user-1", "pcd", "set1")
    service.complete_attempt("user-1", warmup.id, {"q1": ["b"]})
    first = service.start_attempt("user-1", "pcd", "set1")
    second = service.start_attempt("user-1", "pcd", "set1")
    _interleave(monkeypatch, lambda: service.complete_attempt("user-1", second.id, {"q1": ["a"]}))

    service.complete_attempt("user-1", first.id, {"q1": ["a"], "q2": ["b", "c"]})

    stats = stored_stats(session_factory)
    assert stats.total_attempts == 3
    assert stats.total_correct == 3
    compute = stats.domain_stats["Compute"]
    assert (compute.correct_count, compute.total_count) == (2, 3)


def test_completion_surfaces_internal_after_exhausting_retries(session_factory, settings, clock, exam_set, monkeypatch):
    service = AttemptService(session_factory, settings, clock=clock)
    attempt = service.start_attempt("user-1", "pcd", "set1")

    def bump_version():
        # a competing writer touching the attempt between every read and write
        with session_factory() as db:
            row = db.get(AttemptRecord, attempt.id)
            row.current_index += 1
            db.commit()

    real_fold = attempts_module.fold_stats

    def fold(*args, **kwargs):
        bump_version()
        return real_fold(*args, **kwargs)

    monkeypatch.setattr(attempts_module, "fold_stats", fold)

    with pytest.raises(Internal):
        service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})

    assert stored_attempt(session_factory, attempt.id).status is AttemptStatus.IN_PROGRESS
    assert stored_stats(session_factory) is None


def test_deadline_aborts_without_writes(service, session_factory, exam_set):
    from mockexam.core.errors import DeadlineExceeded

    attempt = service.start_attempt("user-1", "pcd", "set1")

    with pytest.raises(DeadlineExceeded):
        service.complete_attempt("user-1", attempt.id, {"q1": ["a"]}, deadline=0)

    assert stored_attempt(session_factory, attempt.id).status is AttemptStatus.IN_PROGRESS
    assert stored_stats(session_factory) is None
    # the attempt can still be completed afterwards
    assert service.complete_attempt("user-1", attempt.id, {"q1": ["a"]}).score == 1


def test_progress_saved_while_completion_commits_is_rejected(service, session_factory, exam_set, monkeypatch):
    attempt = service.start_attempt("user-1", "pcd", "set1")
    real_save_progress = lifecycle.save_progress
    calls = {"n": 0}

    def save_progress(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})
        return real_save_progress(*args, **kwargs)

    monkeypatch.setattr(lifecycle, "save_progress", save_progress)

    with pytest.raises(FailedPrecondition):
        service.save_progress("user-1", attempt.id, 1, {"q2": ["b"]})

    stored = stored_attempt(session_factory, attempt.id)
    assert stored.status is AttemptStatus.COMPLETED
    assert stored.score == 1
    assert stored.answers == {"q1": ["a"]}
    with pytest.raises(FailedPrecondition):
        service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})
    assert stored_stats(session_factory).total_attempts == 1


def test_completion_rereads_attempt_changed_by_another_writer(service, session_factory, exam_set, monkeypatch):
    warmup = service.start_attempt("user-1", "pcd", "set1")
    service.complete_attempt("user-1", warmup.id, {"q1": ["b"]})
    attempt = service.start_attempt("user-1", "pcd", "set1")
    calls = _interleave(monkeypatch, lambda: service.save_progress("user-1", attempt.id, 1, {"q2": ["b", "c"]}))

    completed = service.complete_attempt("user-1", attempt.id, {"q1": ["a"]})

    # the retry scored the progress saved in between
    assert calls["n"] == 2
    assert completed.answers == {"q1": ["a"], "q2": ["b", "c"]}
    assert completed.score == 2
    assert stored_attempt(session_factory, attempt.id).current_index == 1
    stats = stored_stats(session_factory)
    assert stats.total_attempts == 2
    assert stats.total_correct == 2


def test_threads_completing_the_same_attempt(settings, clock, engine, exam_set):
    service = AttemptService(make_session_factory(engine), settings.model_copy(update={"TX_MAX_ATTEMPTS": 10}), clock=clock)
    attempt = service.start_attempt("user-1", "pcd", "set1")
    barrier = threading.Barrier(2)

    def complete(answers):
        barrier.wait()
        try:
            return service.complete_attempt("user-1", attempt.id, answers)
        except FailedPrecondition as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(complete, [{"q1": ["a"]}, {"q1": ["a"], "q2": ["b", "c"]}]))

    winners = [o for o in outcomes if not isinstance(o, FailedPrecondition)]
    assert len(winners) == 1
    assert sum(isinstance(o, FailedPrecondition) for o in outcomes) == 1
    session_factory = make_session_factory(engine)
    assert stored_attempt(session_factory, attempt.id) == winners[0]
    stats = stored_stats(session_factory)
    assert stats.total_attempts == 1
    assert stats.total_correct == winners[0].score


def test_stats_read_failure_is_internal(settings, tmp_path):
    # no tables were created in this database
    bare = create_engine(f"sqlite:///{tmp_path / 'bare.db'}", future=True)
    service = AttemptService(make_session_factory(bare), settings)

    with pytest.raises(Internal):
        service.get_user_exam_stats("user-1", "pcd")
    bare.dispose()
