"""
Scoring engine: per-question correctness and per-domain tallies.

Pure and deterministic. Only questions that have an entry in the submitted
answers are scored; unanswered questions add nothing to any denominator,
and answers for question ids outside the canonical set are ignored.
"""
from collections import Counter
from typing import Iterable, Mapping, Sequence

from mockexam.models.domain import DomainTally, Question, ScoreResult


def is_correct(selected: Sequence[str], correct: Sequence[str]) -> bool:
    """Order-independent match where duplicate selections count."""
    return len(selected) == len(correct) and Counter(selected) == Counter(correct)


def score_questions(questions: Iterable[Question], answers: Mapping[str, Sequence[str]]) -> ScoreResult:
    result = ScoreResult()
    for q in questions:
        if q.id not in answers:
            continue
        tally = result.per_domain.setdefault(q.domain, DomainTally())
        tally.total += 1
        ok = is_correct(answers[q.id], q.correct_answers)
        result.correctness[q.id] = ok
        if ok:
            tally.correct += 1
            result.total_correct += 1
    return result
