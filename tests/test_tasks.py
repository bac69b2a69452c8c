import unittest
from types import SimpleNamespace
from unittest import mock

from vmevc.core.cancel import CancelToken
from vmevc.core.exceptions import VMwareError
from vmevc.vmware.tasks import TaskState, TaskWaiter

from tests.fakes import ERROR, LOG, RUNNING, SUCCESS, FakeTask, info


def _waiter():
    return TaskWaiter(LOG, poll_interval=0.001, max_interval=0.005)


class TestTaskWaiter(unittest.TestCase):
    def test_success_after_running(self):
        task = FakeTask(info(RUNNING, progress=10), info(RUNNING, progress=60), info(SUCCESS, result="done"))
        seen = []
        outcome = _waiter().wait(task, CancelToken(), on_progress=seen.append)
        self.assertIs(outcome.state, TaskState.SUCCEEDED)
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.result, "done")
        self.assertEqual(seen, [10, 60, 100])

    def test_failure_reason_from_fault_msg(self):
        fault = SimpleNamespace(msg="EVC mode intel-westmere exceeds host capabilities")
        outcome = _waiter().wait(FakeTask(info(RUNNING), info(ERROR, error=fault)), CancelToken())
        self.assertIs(outcome.state, TaskState.FAILED)
        self.assertEqual(outcome.reason, "EVC mode intel-westmere exceeds host capabilities")

    def test_failure_without_fault(self):
        outcome = _waiter().wait(FakeTask(info(ERROR)), CancelToken())
        self.assertIs(outcome.state, TaskState.FAILED)
        self.assertTrue(outcome.reason)

    def test_explicit_cancel_stops_waiting(self):
        task = FakeTask(info(RUNNING))
        token = CancelToken()
        token.cancel()
        outcome = _waiter().wait(task, token)
        self.assertIs(outcome.state, TaskState.CANCELLED)
        self.assertEqual(outcome.reason, "cancelled")
        self.assertEqual(task.polls, 1)

    def test_deadline_cancels(self):
        outcome = _waiter().wait(FakeTask(info(RUNNING)), CancelToken(timeout=0.05))
        self.assertIs(outcome.state, TaskState.CANCELLED)
        self.assertEqual(outcome.reason, CancelToken.DEADLINE)

    def test_terminal_state_wins_over_cancel(self):
        token = CancelToken()
        token.cancel()
        outcome = _waiter().wait(FakeTask(info(SUCCESS)), token)
        self.assertIs(outcome.state, TaskState.SUCCEEDED)

    def test_unreadable_task_is_vmware_error(self):
        task = mock.MagicMock()
        type(task).info = mock.PropertyMock(side_effect=RuntimeError("session expired"))
        with self.assertRaises(VMwareError) as cm:
            _waiter().wait(task, CancelToken())
        self.assertIn("session expired", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
