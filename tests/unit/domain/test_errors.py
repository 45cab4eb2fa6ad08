"""Tests for the domain error hierarchy."""

from __future__ import annotations

import pytest

from reencode.domain.errors import (
    CaptureError,
    ConfigurationError,
    CorrelatedError,
    DuplicateKeyError,
    EngineProtocolError,
    EngineUnavailableError,
    OrphanEventError,
    PersistenceError,
    PipelineError,
    StageError,
    ValidationError,
)


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error_cls",
        [
            ConfigurationError,
            ValidationError,
            EngineUnavailableError,
            DuplicateKeyError,
            StageError,
            OrphanEventError,
            CaptureError,
            PersistenceError,
            EngineProtocolError,
        ],
    )
    def test_all_errors_are_pipeline_errors(self, error_cls: type[PipelineError]) -> None:
        assert issubclass(error_cls, PipelineError)

    @pytest.mark.parametrize(
        "error_cls",
        [EngineUnavailableError, DuplicateKeyError, StageError, OrphanEventError, CaptureError],
    )
    def test_stage_errors_are_correlated(self, error_cls: type[PipelineError]) -> None:
        assert issubclass(error_cls, CorrelatedError)

    def test_persistence_error_is_not_correlated(self) -> None:
        assert not issubclass(PersistenceError, CorrelatedError)

    def test_message_attribute(self) -> None:
        err = PipelineError("engine exploded")
        assert err.message == "engine exploded"
        assert str(err) == "engine exploded"

    def test_exception_chaining(self) -> None:
        cause = OSError("disk full")
        try:
            raise PersistenceError("append failed") from cause
        except PersistenceError as err:
            assert err.__cause__ is cause


class TestCorrelatedError:
    def test_carries_run_and_phase(self) -> None:
        err = StageError("boom", run_id="run-1", phase="merge")
        assert err.run_id == "run-1"
        assert err.phase == "merge"

    def test_context_joins_run_and_phase(self) -> None:
        assert StageError("boom", run_id="run-1", phase="merge").context == "run-1-merge"

    def test_context_without_phase(self) -> None:
        assert CaptureError("boom", run_id="run-1").context == "run-1"

    def test_context_empty_when_uncorrelated(self) -> None:
        assert StageError("boom").context == ""
        assert StageError("boom", phase="load").context == ""
