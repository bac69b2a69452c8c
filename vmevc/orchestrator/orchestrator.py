from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Mapping, Optional, TextIO

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from ..core.cancel import CancelToken
from ..core.utils import U
from ..vmware.evc import BaselineMaskResolver, EVCApplier, FeatureMask
from ..vmware.inventory import InventoryResolver
from ..vmware.tasks import TaskWaiter
from ..vmware.vmware_client import VMwareClient
from .settings import EvcSettings

ClientFactory = Callable[[logging.Logger, EvcSettings], VMwareClient]


def default_client_factory(logger: logging.Logger, s: EvcSettings) -> VMwareClient:
    return VMwareClient(logger, s.host, s.user, s.password, port=s.port, insecure=s.insecure)


class Orchestrator:
    """
    Top-level workflow runner:
    - validate settings (no remote call before this passes)
    - connect
    - resolve datacenter -> VM (scoped) and cluster
    - resolve the EVC baseline to its feature masks and print them
    - apply the masks to the VM and wait for the task

    Returns 0 on success; every failure is raised as a Fatal subclass.
    """

    def __init__(
        self,
        logger: logging.Logger,
        args: argparse.Namespace,
        conf: Optional[Mapping[str, Any]] = None,
        *,
        client_factory: ClientFactory = default_client_factory,
        waiter: Optional[TaskWaiter] = None,
        env: Optional[Mapping[str, str]] = None,
        out: Optional[TextIO] = None,
    ):
        self.logger = logger
        self.args = args
        self.conf = dict(conf or {})
        self.client_factory = client_factory
        self.waiter = waiter
        self.env = os.environ if env is None else env
        self.out = out or sys.stdout

    def _print(self, line: str) -> None:
        print(line, file=self.out, flush=True)

    def run(self) -> int:
        if getattr(self.args, "dump_config", False):
            self._print(U.json_dump(U.mask_secrets(self.conf)))
            return 0

        settings = EvcSettings.from_args(self.args, self.conf, self.env).validate()

        with self.client_factory(self.logger, settings) as client:
            inventory = InventoryResolver(self.logger, client)
            resolver = BaselineMaskResolver(self.logger, client)

            if settings.list_baselines:
                cluster = inventory.resolve_cluster(settings.cluster)
                self._emit_baselines(settings, resolver.supported_baselines(cluster))
                return 0

            dc = inventory.resolve_datacenter(settings.datacenter)
            vm = inventory.resolve_vm(dc, settings.vm)
            cluster = inventory.resolve_cluster(settings.cluster)

            masks = resolver.resolve_masks(cluster, settings.baseline)
            self._emit_masks(settings, masks)

            if settings.dry_run:
                self.logger.info("Dry run: not applying EVC mode %s to %s", settings.baseline, settings.vm)
                return 0

            self._apply(settings, vm, masks)

        self._print(f"EVC mode {settings.baseline} applied to {settings.vm}")
        return 0

    def _emit_masks(self, settings: EvcSettings, masks: List[FeatureMask]) -> None:
        if settings.json_output:
            payload: Dict[str, Any] = {
                "baseline": settings.baseline,
                "cluster": settings.cluster,
                "vm": settings.vm,
                "masks": [asdict(m) for m in masks],
            }
            self._print(U.json_dump(payload))
            return
        for m in masks:
            self._print(m.describe())

    def _emit_baselines(self, settings: EvcSettings, baselines: List[tuple]) -> None:
        if settings.json_output:
            self._print(U.json_dump([{"key": k, "label": label} for k, label in baselines]))
            return
        for k, label in baselines:
            self._print(f"{k}\t{label}" if label else k)

    def _apply(self, settings: EvcSettings, vm: Any, masks: List[FeatureMask]) -> None:
        applier = EVCApplier(self.logger, self.waiter or TaskWaiter(self.logger))
        self._print(f"Applying EVC mode {settings.baseline} to {settings.vm}")

        cancel = CancelToken(settings.timeout)
        with cancel.on_sigint():
            if not settings.progress:
                applier.apply(vm, masks, cancel)
                return
            with Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=Console(stderr=True),
                transient=True,
            ) as progress:
                bar = progress.add_task(f"ApplyEvcModeVM_Task {settings.vm}", total=100)
                applier.apply(vm, masks, cancel, on_progress=lambda pct: progress.update(bar, completed=pct))
