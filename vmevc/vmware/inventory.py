# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import Any, List

from pyVmomi import vim

from ..core.exceptions import NotFoundError
from .vmware_client import VMwareClient

# how many candidate names to show in a NotFound message
_SHOW_NAMES = 20


def _names(objs: List[Any]) -> List[str]:
    return sorted(str(getattr(o, "name", "") or "") for o in objs)


def _preview(names: List[str]) -> str:
    shown = names[:_SHOW_NAMES]
    extra = len(names) - len(shown)
    s = ", ".join(shown) or "(none)"
    return f"{s} (+{extra} more)" if extra > 0 else s


class InventoryResolver:
    """
    Name -> managed object lookups (read-only).

    Datacenter and cluster are searched from the inventory root; the VM is
    searched only inside the datacenter it was asked for.
    """

    def __init__(self, logger: logging.Logger, client: VMwareClient):
        self.logger = logger
        self.client = client

    def _pick(self, kind: str, name: str, candidates: List[Any], scope: str) -> Any:
        matches = [o for o in candidates if getattr(o, "name", None) == name]
        if len(matches) == 1:
            self.logger.debug("Resolved %s %r -> %s", kind, name, getattr(matches[0], "_moId", matches[0]))
            return matches[0]
        if not matches:
            raise NotFoundError(
                msg=f"{kind} {name!r} not found in {scope}; available: {_preview(_names(candidates))}",
                context={"kind": kind, "name": name, "scope": scope, "ambiguous": False},
            )
        raise NotFoundError(
            msg=f"{kind} {name!r} is ambiguous in {scope}: {len(matches)} objects share that name",
            context={"kind": kind, "name": name, "scope": scope, "ambiguous": True},
        )

    def resolve_datacenter(self, name: str) -> Any:
        n = (name or "").strip()
        if not n:
            raise NotFoundError(msg="datacenter name is empty", context={"kind": "datacenter", "ambiguous": False})
        return self._pick("datacenter", n, self.client.list_objects(vim.Datacenter), "inventory")

    def resolve_vm(self, datacenter: Any, name: str) -> Any:
        n = (name or "").strip()
        scope = f"datacenter {getattr(datacenter, 'name', datacenter)!r}"
        if not n:
            raise NotFoundError(msg=f"VM name is empty ({scope})", context={"kind": "vm", "ambiguous": False})
        vms = self.client.list_objects(vim.VirtualMachine, root=datacenter.vmFolder)
        return self._pick("VM", n, vms, scope)

    def resolve_cluster(self, name: str, default_if_empty: bool = True) -> Any:
        """
        Exact name lookup. An empty name falls back to the only cluster in
        the inventory; several clusters make the empty name ambiguous.
        """
        n = (name or "").strip()
        clusters = self.client.list_objects(vim.ClusterComputeResource)
        if n:
            return self._pick("cluster", n, clusters, "inventory")

        if not default_if_empty:
            raise NotFoundError(msg="cluster name is empty", context={"kind": "cluster", "ambiguous": False})
        if len(clusters) == 1:
            self.logger.info("No cluster given; using the only cluster: %s", clusters[0].name)
            return clusters[0]
        if not clusters:
            raise NotFoundError(
                msg="no cluster name given and no clusters exist",
                context={"kind": "cluster", "name": "", "ambiguous": False},
            )
        raise NotFoundError(
            msg=f"no cluster name given and {len(clusters)} clusters exist: {_preview(_names(clusters))}",
            context={"kind": "cluster", "name": "", "ambiguous": True},
        )
