import unittest
from unittest import mock

from pyVmomi import vim, vmodl

from vmevc.core.cancel import CancelToken
from vmevc.core.exceptions import (
    ApplyRejectedError,
    OperationCancelledError,
    OperationFailedError,
    UnsupportedBaselineError,
    VMwareError,
)
from vmevc.vmware.evc import ApplyRequest, BaselineMaskResolver, EVCApplier, FeatureMask
from vmevc.vmware.tasks import TaskOutcome, TaskState

from tests.fakes import LOG, SANDYBRIDGE, TABLE, evc_cluster, fake_client, mask, mode


class TestBaselineMaskResolver(unittest.TestCase):
    def _resolve(self, table, baseline):
        client = fake_client(table=table)
        cluster = evc_cluster()
        return BaselineMaskResolver(LOG, client).resolve_masks(cluster, baseline), client, cluster

    def test_sandybridge_resolves_in_table_order(self):
        masks, _, _ = self._resolve(TABLE, "intel-sandybridge")
        self.assertEqual(
            masks,
            [FeatureMask("f1", "cpuid.AES", "1"), FeatureMask("f2", "cpuid.AVX", "0")],
        )

    def test_absent_baseline_names_the_request(self):
        with self.assertRaises(UnsupportedBaselineError) as cm:
            self._resolve(TABLE, "intel-haswell")
        self.assertIn("intel-haswell", str(cm.exception))
        self.assertEqual(cm.exception.context["supported"], ["intel-sandybridge", "intel-westmere"])
        self.assertEqual(cm.exception.code, 5)

    def test_empty_or_missing_table_is_unsupported(self):
        for table in ([], None):
            with self.subTest(table=table):
                with self.assertRaises(UnsupportedBaselineError) as cm:
                    self._resolve(table, "intel-sandybridge")
                self.assertIn("intel-sandybridge", str(cm.exception))

    def test_match_is_case_sensitive(self):
        with self.assertRaises(UnsupportedBaselineError):
            self._resolve(TABLE, "Intel-Sandybridge")

    def test_first_duplicate_wins(self):
        table = [
            mode("amd-rev-e", [mask("a", "cpuid.first", "1")]),
            mode("amd-rev-e", [mask("b", "cpuid.second", "1")]),
        ]
        masks, _, _ = self._resolve(table, "amd-rev-e")
        self.assertEqual([m.key for m in masks], ["a"])

    def test_matched_mode_without_masks_is_unsupported(self):
        with self.assertRaises(UnsupportedBaselineError):
            self._resolve([mode("intel-merom", [])], "intel-merom")

    def test_manager_state_is_read_once_as_full_object(self):
        _, client, cluster = self._resolve(TABLE, "intel-westmere")
        cluster.EvcManager.assert_called_once_with()
        client.retrieve_one.assert_called_once_with(cluster.EvcManager.return_value)

    def test_cluster_without_evc_manager(self):
        cluster = evc_cluster()
        cluster.EvcManager.return_value = None
        with self.assertRaises(UnsupportedBaselineError):
            BaselineMaskResolver(LOG, fake_client(table=TABLE)).resolve_masks(cluster, "intel-westmere")

    def test_evc_manager_fault_is_wrapped(self):
        cluster = evc_cluster()
        cluster.EvcManager.side_effect = vmodl.fault.NotSupported(msg="EVC is not available")
        with self.assertRaises(VMwareError) as cm:
            BaselineMaskResolver(LOG, fake_client(table=TABLE)).resolve_masks(cluster, "intel-westmere")
        self.assertIn("EVC is not available", str(cm.exception))

    def test_evc_manager_transport_error_is_wrapped(self):
        cluster = evc_cluster()
        cluster.EvcManager.side_effect = ConnectionResetError("peer reset")
        with self.assertRaises(VMwareError) as cm:
            BaselineMaskResolver(LOG, fake_client(table=TABLE)).resolve_masks(cluster, "intel-westmere")
        self.assertEqual(cm.exception.step, "resolve-masks")
        self.assertEqual(cm.exception.context["cluster"], "Cluster-A")
        self.assertIsInstance(cm.exception.cause, ConnectionResetError)
        self.assertTrue(str(cm.exception).startswith("resolve-masks: "))

    def test_supported_baselines_keeps_server_order(self):
        out = BaselineMaskResolver(LOG, fake_client(table=TABLE)).supported_baselines(evc_cluster())
        self.assertEqual(out, [("intel-sandybridge", "Intel Sandy Bridge"), ("intel-westmere", "Intel Westmere")])


class TestEVCApplier(unittest.TestCase):
    MASKS = [
        FeatureMask("z", "cpuid.Z", "0"),
        FeatureMask("a", "cpuid.A", "1"),
        FeatureMask("m", "cpuid.M", "Val:1"),
        FeatureMask("a", "cpuid.A", "1"),
    ]

    def setUp(self):
        self.vm = mock.MagicMock()
        self.vm.name = "vm1"
        self.task = mock.MagicMock()
        self.vm.ApplyEvcModeVM_Task.return_value = self.task
        self.waiter = mock.Mock()

    def _apply(self, outcome, cancel=None):
        self.waiter.wait.return_value = outcome
        EVCApplier(LOG, self.waiter).apply(self.vm, self.MASKS, cancel or CancelToken())

    def test_request_is_always_complete(self):
        req = EVCApplier.build_request(self.vm, self.MASKS)
        self.assertTrue(req.complete_masks)
        self.assertEqual(req.masks, tuple(self.MASKS))
        with self.assertRaises(TypeError):
            ApplyRequest(self.vm, (), complete_masks=False)  # type: ignore[call-arg]

    def test_success_submits_masks_unchanged(self):
        cancel = CancelToken()
        self._apply(TaskOutcome(TaskState.SUCCEEDED), cancel)

        self.vm.ApplyEvcModeVM_Task.assert_called_once()
        kwargs = self.vm.ApplyEvcModeVM_Task.call_args.kwargs
        self.assertIs(kwargs["completeMasks"], True)
        sent = kwargs["mask"]
        self.assertTrue(all(isinstance(m, vim.host.FeatureMask) for m in sent))
        self.assertEqual(
            [(m.key, m.featureName, m.value) for m in sent],
            [(m.key, m.feature_name, m.value) for m in self.MASKS],
        )
        self.waiter.wait.assert_called_once_with(self.task, cancel, on_progress=None)

    def test_terminal_failure_reason_is_verbatim(self):
        reason = "A specified parameter was not correct: mask[2].value"
        with self.assertRaises(OperationFailedError) as cm:
            self._apply(TaskOutcome(TaskState.FAILED, reason=reason))
        self.assertIn(reason, str(cm.exception))
        self.assertEqual(cm.exception.detail, reason)
        self.assertEqual(cm.exception.step, "await")

    def test_synchronous_rejection_skips_wait(self):
        self.vm.ApplyEvcModeVM_Task.side_effect = vim.fault.InvalidPowerState(
            msg="The attempted operation cannot be performed in the current state (Powered on)."
        )
        with self.assertRaises(ApplyRejectedError) as cm:
            self._apply(TaskOutcome(TaskState.SUCCEEDED))
        self.assertIn("Powered on", str(cm.exception))
        self.assertIsInstance(cm.exception.cause, vim.fault.InvalidPowerState)
        self.waiter.wait.assert_not_called()

    def test_deadline_cancellation_warns_state_unknown(self):
        with self.assertRaises(OperationCancelledError) as cm:
            self._apply(TaskOutcome(TaskState.CANCELLED, reason=CancelToken.DEADLINE), CancelToken(timeout=30))
        self.assertEqual(cm.exception.code, 124)
        self.assertIn("unknown", str(cm.exception))
        self.assertIn("not cancelled", str(cm.exception))

    def test_interrupt_cancellation_exit_code(self):
        with self.assertRaises(OperationCancelledError) as cm:
            self._apply(TaskOutcome(TaskState.CANCELLED, reason=CancelToken.INTERRUPT))
        self.assertEqual(cm.exception.code, 130)
        self.assertIn("interrupted", str(cm.exception))


class TestFeatureMask(unittest.TestCase):
    def test_from_vim_and_describe(self):
        m = FeatureMask.from_vim(SANDYBRIDGE[0])
        self.assertEqual(m, FeatureMask("f1", "cpuid.AES", "1"))
        self.assertEqual(m.describe(), "mask key=f1 feature_name=cpuid.AES value=1")

    def test_to_vim(self):
        v = FeatureMask("f2", "cpuid.AVX", "0").to_vim()
        self.assertIsInstance(v, vim.host.FeatureMask)
        self.assertEqual((v.key, v.featureName, v.value), ("f2", "cpuid.AVX", "0"))


if __name__ == "__main__":
    unittest.main()
