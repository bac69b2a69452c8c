# -*- coding: utf-8 -*-
"""
EVC baseline resolution and application for a single VM.

The cluster's EVC manager advertises the supported baselines
(evcState.supportedEVCMode), each with an ordered list of CPU feature masks.
Applying a baseline to a VM sends that list, unchanged and marked complete,
through VirtualMachine.ApplyEvcModeVM_Task.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pyVmomi import vim

from ..core.cancel import CancelToken
from ..core.exceptions import (
    ApplyRejectedError,
    OperationCancelledError,
    OperationFailedError,
    UnsupportedBaselineError,
    fault_text,
    wrap_vmware,
)
from .tasks import TaskState, TaskWaiter
from .vmware_client import VMwareClient


@dataclass(frozen=True)
class FeatureMask:
    key: str
    feature_name: str
    value: str

    @classmethod
    def from_vim(cls, m: Any) -> "FeatureMask":
        return cls(key=str(m.key), feature_name=str(m.featureName), value=str(m.value))

    def to_vim(self) -> Any:
        return vim.host.FeatureMask(key=self.key, featureName=self.feature_name, value=self.value)

    def describe(self) -> str:
        return f"mask key={self.key} feature_name={self.feature_name} value={self.value}"


@dataclass(frozen=True)
class ApplyRequest:
    vm: Any
    masks: Tuple[FeatureMask, ...]
    # The list always comes from a full baseline lookup, never a patch.
    complete_masks: bool = field(default=True, init=False)


def _name(obj: Any) -> str:
    return str(getattr(obj, "name", None) or getattr(obj, "_moId", None) or obj)


class BaselineMaskResolver:
    def __init__(self, logger: logging.Logger, client: VMwareClient):
        self.logger = logger
        self.client = client

    def evc_state(self, cluster: Any) -> Any:
        """Live EVC state of the cluster, read as one full object fetch."""
        try:
            manager = cluster.EvcManager()
        except Exception as e:
            raise wrap_vmware(
                f"cluster {_name(cluster)!r}: EvcManager() failed: {fault_text(e)}",
                e,
                step="resolve-masks",
                cluster=_name(cluster),
            )
        if manager is None:
            raise UnsupportedBaselineError(
                msg=f"cluster {_name(cluster)!r} has no EVC manager",
                context={"cluster": _name(cluster)},
            )
        props = self.client.retrieve_one(manager)
        state = props.get("evcState")
        self.logger.info(
            "Cluster %s current EVC mode: %s", _name(cluster), getattr(state, "currentEVCModeKey", None) or "(disabled)"
        )
        return state

    @staticmethod
    def _table(state: Any) -> List[Any]:
        return list(getattr(state, "supportedEVCMode", None) or [])

    def supported_baselines(self, cluster: Any) -> List[Tuple[str, str]]:
        return [(str(m.key), str(getattr(m, "label", "") or "")) for m in self._table(self.evc_state(cluster))]

    def resolve_masks(self, cluster: Any, baseline: str) -> List[FeatureMask]:
        table = self._table(self.evc_state(cluster))
        for mode in table:
            if mode.key == baseline:
                masks = [FeatureMask.from_vim(m) for m in (getattr(mode, "featureMask", None) or [])]
                if not masks:
                    raise UnsupportedBaselineError(
                        msg=f"EVC mode {baseline!r} has no feature masks on cluster {_name(cluster)!r}",
                        context={"baseline": baseline, "cluster": _name(cluster)},
                    )
                self.logger.debug("EVC mode %s resolved to %d feature masks", baseline, len(masks))
                return masks

        supported = [str(m.key) for m in table]
        raise UnsupportedBaselineError(
            msg=(
                f"EVC mode {baseline!r} is not supported by cluster {_name(cluster)!r}; "
                f"supported: {', '.join(supported) or '(none)'}"
            ),
            context={"baseline": baseline, "cluster": _name(cluster), "supported": supported},
        )


class EVCApplier:
    def __init__(self, logger: logging.Logger, waiter: Optional[TaskWaiter] = None):
        self.logger = logger
        self.waiter = waiter or TaskWaiter(logger)

    @staticmethod
    def build_request(vm: Any, masks: Sequence[FeatureMask]) -> ApplyRequest:
        return ApplyRequest(vm=vm, masks=tuple(masks))

    def submit(self, request: ApplyRequest) -> Any:
        try:
            return request.vm.ApplyEvcModeVM_Task(
                mask=[m.to_vim() for m in request.masks],
                completeMasks=request.complete_masks,
            )
        except Exception as e:
            raise ApplyRejectedError(
                msg=f"ApplyEvcModeVM_Task on VM {_name(request.vm)!r} rejected: {fault_text(e)}",
                cause=e,
                detail=fault_text(e),
                context={"vm": _name(request.vm), "fault": type(e).__name__},
            )

    def apply(
        self,
        vm: Any,
        masks: Sequence[FeatureMask],
        cancel: CancelToken,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> None:
        request = self.build_request(vm, masks)
        task = self.submit(request)
        self.logger.debug("Submitted ApplyEvcModeVM_Task: %s", getattr(task, "_moId", task))

        outcome = self.waiter.wait(task, cancel, on_progress=on_progress)
        if outcome.state is TaskState.SUCCEEDED:
            return
        if outcome.state is TaskState.FAILED:
            raise OperationFailedError(
                msg=f"apply EVC mode to VM {_name(vm)!r} failed: {outcome.reason}",
                detail=outcome.reason,
                context={"vm": _name(vm), "task": getattr(task, "_moId", None)},
            )

        rc = 130 if outcome.reason == CancelToken.INTERRUPT else 124
        why = "interrupted" if outcome.reason == CancelToken.INTERRUPT else f"timed out after {cancel.timeout}s"
        raise OperationCancelledError(
            code=rc,
            msg=(
                f"wait for ApplyEvcModeVM_Task on VM {_name(vm)!r} {why}; the server-side task was not "
                f"cancelled and its final state is unknown, verify the VM's EVC mode before retrying"
            ),
            detail=outcome.reason,
            context={"vm": _name(vm), "task": getattr(task, "_moId", None)},
        )
