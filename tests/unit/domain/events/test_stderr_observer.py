"""Tests for StderrEventObserver."""

from datetime import datetime, timezone
from unittest.mock import patch

from cwf.domain.events.event import WorkflowEvent
from cwf.domain.events.event_types import WorkflowEventType
from cwf.domain.events.stderr_observer import StderrEventObserver


class TestStderrEventObserver:
    """Tests for StderrEventObserver."""

    def test_emits_event_type_to_stderr(self) -> None:
        """Observer emits [EVENT] prefix with event type."""
        observer = StderrEventObserver()
        event = WorkflowEvent(
            event_type=WorkflowEventType.STEP_STARTED,
            workflow_id="0123456789abcdef",
            thread_id="t_1",
            timestamp=datetime.now(timezone.utc),
        )

        with patch("click.echo") as mock_echo:
            observer.on_event(event)
            mock_echo.assert_called_once()
            output = mock_echo.call_args[0][0]
            assert output.startswith("[EVENT] step_started")
            assert "workflow=01234567" in output
            assert mock_echo.call_args[1]["err"] is True

    def test_includes_type_step_and_metadata(self) -> None:
        """Observer includes workflow type, step name and sorted metadata."""
        observer = StderrEventObserver()
        event = WorkflowEvent(
            event_type=WorkflowEventType.REVISION_REQUESTED,
            workflow_id="wf_1",
            thread_id="t_1",
            timestamp=datetime.now(timezone.utc),
            workflow_type="Press Release",
            step_name="Asset Review",
            metadata={"revision_count": 2, "a": "x"},
        )

        with patch("click.echo") as mock_echo:
            observer.on_event(event)
            output = mock_echo.call_args[0][0]
            assert "type='Press Release'" in output
            assert "step='Asset Review'" in output
            assert output.index("a=x") < output.index("revision_count=2")

    def test_omits_optional_fields_when_none(self) -> None:
        """Observer omits type and step when they are not set."""
        observer = StderrEventObserver()
        event = WorkflowEvent(
            event_type=WorkflowEventType.WORKFLOW_CREATED,
            workflow_id="wf_1",
            thread_id="t_1",
            timestamp=datetime.now(timezone.utc),
        )

        with patch("click.echo") as mock_echo:
            observer.on_event(event)
            output = mock_echo.call_args[0][0]
            assert "type=" not in output
            assert "step=" not in output
