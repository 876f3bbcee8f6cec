import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stackit.errors import ConflictError
from stackit.utils.retry import is_concurrent_modification
from stackit.utils.retry import is_concurrent_modification_or_race
from stackit.utils.retry import retry_on_conflict


def _locked() -> OperationalError:
    return OperationalError("UPDATE answers ...", {}, Exception("database is locked"))


def _duplicate() -> IntegrityError:
    return IntegrityError("INSERT INTO votes ...", {}, Exception("UNIQUE constraint failed"))


def test_classifies_concurrent_modifications():
    assert is_concurrent_modification(StaleDataError("stale"))
    assert is_concurrent_modification(_locked())
    assert not is_concurrent_modification(_duplicate())
    assert not is_concurrent_modification(ValueError("nope"))

    assert is_concurrent_modification_or_race(_duplicate())
    assert not is_concurrent_modification_or_race(OperationalError("SELECT 1", {}, Exception("no such table")))


def test_retries_until_success():
    calls = []

    @retry_on_conflict(max_attempts=3, base_delay=0)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "done"

    assert flaky() == "done"
    assert len(calls) == 3


def test_gives_up_with_conflict_error(caplog):
    calls = []

    @retry_on_conflict(max_attempts=2, base_delay=0)
    def always_stale():
        calls.append(1)
        raise StaleDataError("version mismatch")

    with pytest.raises(ConflictError) as exc_info:
        always_stale()

    assert len(calls) == 2
    assert isinstance(exc_info.value.cause, StaleDataError)
    assert "persisted after 2 attempts" in caplog.text


def test_non_retriable_errors_propagate_at_once():
    calls = []

    @retry_on_conflict(max_attempts=5, base_delay=0)
    def broken():
        calls.append(1)
        raise ValueError("bug")

    with pytest.raises(ValueError):
        broken()

    assert len(calls) == 1


def test_integrity_errors_retried_only_when_asked():
    plain_calls, race_calls = [], []

    @retry_on_conflict(max_attempts=3, base_delay=0)
    def plain():
        plain_calls.append(1)
        raise _duplicate()

    @retry_on_conflict(max_attempts=3, base_delay=0, retriable=is_concurrent_modification_or_race)
    def racing():
        race_calls.append(1)
        if len(race_calls) == 1:
            raise _duplicate()
        return len(race_calls)

    with pytest.raises(IntegrityError):
        plain()

    assert len(plain_calls) == 1
    assert racing() == 2


def test_attempt_budget_comes_from_settings(monkeypatch):
    from stackit.config import get_settings

    monkeypatch.setattr(get_settings(), "max_commit_attempts", 4)
    calls = []

    @retry_on_conflict(base_delay=0)
    def always_stale():
        calls.append(1)
        raise StaleDataError("version mismatch")

    with pytest.raises(ConflictError):
        always_stale()

    assert len(calls) == 4
