# vmevc/vmware/vmware_client.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import socket
import ssl
from typing import Any, Dict, List, Optional, Sequence

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim

from ..core.exceptions import VMwareError, VsphereConnectionError, fault_text, wrap_vmware


class VMwareClient:
    """
    Minimal vSphere/vCenter session:
      - SmartConnect login (optionally without TLS verification)
      - container-view listing by managed object type
      - single-object property collector reads

    One instance is owned by the orchestrator and handed to every resolver;
    there is no module-level session.
    """

    def __init__(
        self,
        logger: logging.Logger,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 443,
        insecure: bool = False,
        timeout: Optional[float] = None,
    ):
        self.logger = logger
        self.host = host
        self.user = user
        self.password = password
        self.port = int(port)
        self.insecure = bool(insecure)
        self.timeout = timeout
        self.si = None

    # ---------------------------
    # Context manager
    # ---------------------------

    def __enter__(self) -> "VMwareClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.disconnect()
        return False

    # ---------------------------
    # Connect / Disconnect
    # ---------------------------

    def _ssl_context(self) -> ssl.SSLContext:
        if self.insecure:
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def _smart_connect(self) -> Any:
        return SmartConnect(
            host=self.host, user=self.user, pwd=self.password, port=self.port, sslContext=self._ssl_context()
        )

    def connect(self) -> None:
        self.logger.debug("Connecting to vSphere %s:%s as %s (insecure=%s)", self.host, self.port, self.user, self.insecure)
        try:
            if self.timeout is not None:
                old_timeout = socket.getdefaulttimeout()
                socket.setdefaulttimeout(self.timeout)
                try:
                    self.si = self._smart_connect()
                finally:
                    socket.setdefaulttimeout(old_timeout)
            else:
                self.si = self._smart_connect()
        except vim.fault.InvalidLogin as e:
            self.si = None
            raise VsphereConnectionError(
                msg=f"login to {self.host} as {self.user!r} rejected: {fault_text(e)}",
                cause=e,
                detail=fault_text(e),
                context={"host": self.host, "kind": "auth"},
            )
        except ssl.SSLError as e:
            self.si = None
            raise VsphereConnectionError(
                msg=f"TLS handshake with {self.host}:{self.port} failed: {e} (set GOVC_INSECURE=1 to skip verification)",
                cause=e,
                detail=str(e),
                context={"host": self.host, "kind": "tls"},
            )
        except Exception as e:
            self.si = None
            raise VsphereConnectionError(
                msg=f"failed to connect to vSphere {self.host}:{self.port}: {fault_text(e)}",
                cause=e,
                detail=fault_text(e),
                context={"host": self.host, "kind": "network"},
            )
        self.logger.info("Connected to vSphere: %s:%s", self.host, self.port)

    def disconnect(self) -> None:
        try:
            if self.si is not None:
                Disconnect(self.si)
        except Exception as e:
            self.logger.debug("Error during disconnect (ignored): %s", e)
        finally:
            self.si = None

    # ---------------------------
    # Inventory helpers
    # ---------------------------

    def _content(self) -> Any:
        if not self.si:
            raise VMwareError(msg="Not connected")
        try:
            return self.si.RetrieveContent()
        except Exception as e:
            raise wrap_vmware(f"Failed to retrieve content: {fault_text(e)}", e)

    def list_objects(self, vimtype: Any, root: Any = None) -> List[Any]:
        """
        All managed objects of `vimtype` below `root` (default: rootFolder).
        """
        content = self._content()
        container = root if root is not None else content.rootFolder
        what = getattr(vimtype, "__name__", str(vimtype))
        try:
            view = content.viewManager.CreateContainerView(container, [vimtype], True)
        except Exception as e:
            raise wrap_vmware(f"Failed to list {what} objects: {fault_text(e)}", e, step="inventory")
        try:
            return list(view.view)
        except Exception as e:
            raise wrap_vmware(f"Failed to list {what} objects: {fault_text(e)}", e, step="inventory")
        finally:
            try:
                view.Destroy()
            except Exception:
                pass

    def retrieve_one(self, obj: Any, props: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Read one managed object through the property collector.

        props=None fetches every property of the object in a single call.
        Returns {property path: value}.
        """
        content = self._content()
        obj_spec = vim.PropertyCollector.ObjectSpec(obj=obj, skip=False)
        prop_spec = vim.PropertyCollector.PropertySpec(
            type=type(obj),
            all=not props,
            pathSet=list(props or []),
        )
        filter_spec = vim.PropertyCollector.FilterSpec(objectSet=[obj_spec], propSet=[prop_spec])
        try:
            result = content.propertyCollector.RetrievePropertiesEx(
                specSet=[filter_spec], options=vim.PropertyCollector.RetrieveOptions()
            )
        except Exception as e:
            raise wrap_vmware(f"Property read of {obj} failed: {fault_text(e)}", e, step="property-read")

        objects = getattr(result, "objects", None) or []
        if not objects:
            raise VMwareError(msg=f"Property read of {obj} returned nothing")
        return {p.name: p.val for p in (objects[0].propSet or [])}
