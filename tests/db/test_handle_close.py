"""Tests for Handle.close() resource release and failure aggregation."""

from unittest.mock import Mock

import pytest

from sqlhandle.db.handles import Handles
from sqlhandle.exceptions import (
    CloseError,
    ConnectionResourceError,
    HandleClosedError,
    TransactionError,
    TransactionLeakError,
)
from sqlhandle.extension.registry import ExtensionMethod
from sqlhandle.config.registry import ConfigRegistry


class TestCleanClose:

    def test_close_releases_builder_then_connection(self, make_handle, mock_connection, mock_builder):
        order = Mock()
        order.attach_mock(mock_builder.close, 'builder_close')
        order.attach_mock(mock_connection.close, 'connection_close')

        handle = make_handle()
        handle.close()

        assert handle.is_closed()
        assert [c[0] for c in order.mock_calls] == ['builder_close', 'connection_close']
        mock_builder.close.assert_called_once_with(mock_connection)
        mock_connection.rollback.assert_not_called()

    def test_close_is_idempotent(self, make_handle, mock_connection, mock_builder):
        handle = make_handle()
        handle.close()
        handle.close()

        mock_connection.close.assert_called_once()
        mock_builder.close.assert_called_once()

    def test_context_manager_closes(self, make_handle, mock_connection):
        with make_handle() as handle:
            assert not handle.is_closed()

        assert handle.is_closed()
        mock_connection.close.assert_called_once()

    def test_operations_fail_after_close(self, make_handle):
        handle = make_handle()
        handle.close()

        with pytest.raises(HandleClosedError):
            handle.begin()
        with pytest.raises(HandleClosedError):
            handle.create_query("SELECT 1")
        with pytest.raises(HandleClosedError):
            handle.savepoint("s1")
        with pytest.raises(HandleClosedError):
            handle.is_in_transaction()
        with pytest.raises(HandleClosedError):
            handle.attach(object)

    def test_close_clears_thread_slots(self, make_handle):
        original = ConfigRegistry()
        handle = make_handle(config=original)
        handle.set_config(ConfigRegistry())
        handle.set_extension_method(ExtensionMethod(object, "run"))

        handle.close()

        assert handle.get_extension_method() is None
        assert handle.get_config() is original


class TestLeakedTransaction:

    def test_open_transaction_is_rolled_back_and_reported(self, make_handle, mock_connection):
        handle = make_handle()
        mock_connection.in_transaction.return_value = True

        with pytest.raises(TransactionLeakError):
            handle.close()

        mock_connection.rollback.assert_called_once()
        mock_connection.close.assert_called_once()
        assert handle.is_closed()

    def test_rollback_callbacks_fire_on_forced_rollback(self, make_handle, mock_connection):
        handle = make_handle()
        mock_connection.in_transaction.return_value = True
        fired = []
        handle.after_rollback(lambda: fired.append("rollback"))

        with pytest.raises(TransactionLeakError):
            handle.close()

        assert fired == ["rollback"]

    def test_handle_opened_inside_transaction_leaves_it_alone(self, make_handle, mock_connection):
        mock_connection.in_transaction.return_value = True
        handle = make_handle()

        handle.close()

        mock_connection.rollback.assert_not_called()
        assert mock_connection.in_transaction.call_count == 1
        mock_connection.close.assert_called_once()

    def test_check_can_be_disabled(self, make_handle, mock_connection):
        handle = make_handle()
        handle.configure(Handles, lambda h: setattr(h, 'force_end_transactions', False))
        mock_connection.in_transaction.return_value = True

        handle.close()

        mock_connection.rollback.assert_not_called()
        assert handle.is_closed()


class TestCloseFailures:

    def test_connection_close_failure(self, make_handle, mock_connection):
        failure = ConnectionResourceError("socket gone")
        mock_connection.close.side_effect = failure
        handle = make_handle()

        with pytest.raises(CloseError) as exc_info:
            handle.close()

        assert str(exc_info.value) == "Unable to close connection"
        assert exc_info.value.cause is failure
        assert exc_info.value.__cause__ is failure
        assert exc_info.value.suppressed == []
        assert handle.is_closed()

    def test_builder_failure_still_closes_connection(self, make_handle, mock_connection, mock_builder):
        failure = RuntimeError("builder exploded")
        mock_builder.close.side_effect = failure
        handle = make_handle()

        with pytest.raises(CloseError) as exc_info:
            handle.close()

        mock_connection.close.assert_called_once()
        assert exc_info.value.cause is failure
        assert exc_info.value.suppressed == []

    def test_every_failure_is_reported_in_order(self, make_handle, mock_connection, mock_builder):
        handle = make_handle()
        mock_connection.in_transaction.return_value = True
        mock_connection.rollback.side_effect = ConnectionResourceError("rollback refused")
        builder_failure = RuntimeError("builder exploded")
        mock_builder.close.side_effect = builder_failure
        close_failure = ConnectionResourceError("socket gone")
        mock_connection.close.side_effect = close_failure

        with pytest.raises(CloseError) as exc_info:
            handle.close()

        error = exc_info.value
        assert error.cause is close_failure
        assert len(error.suppressed) == 2
        assert isinstance(error.suppressed[0], TransactionError)
        assert error.suppressed[1] is builder_failure
        assert handle.is_closed()

    def test_first_recorded_failure_becomes_cause(self, make_handle, mock_connection, mock_builder):
        handle = make_handle()
        mock_connection.in_transaction.return_value = True
        mock_connection.rollback.side_effect = ConnectionResourceError("rollback refused")
        builder_failure = RuntimeError("builder exploded")
        mock_builder.close.side_effect = builder_failure

        with pytest.raises(CloseError) as exc_info:
            handle.close()

        error = exc_info.value
        assert isinstance(error.cause, TransactionError)
        assert error.suppressed == [builder_failure]
        mock_connection.close.assert_called_once()

    def test_status_probe_failure_is_recorded(self, make_handle, mock_connection):
        handle = make_handle()
        mock_connection.in_transaction.side_effect = ConnectionResourceError("probe failed")

        with pytest.raises(CloseError) as exc_info:
            handle.close()

        assert isinstance(exc_info.value.cause, TransactionError)
        mock_connection.rollback.assert_not_called()
        mock_connection.close.assert_called_once()
