from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from ..core.cred import ENV_PASSWORD, ENV_URL, ENV_USER, resolve_vsphere_creds
from ..core.exceptions import ConfigurationError

DEFAULT_EVC_MODE = "intel-sandybridge"


@dataclass(frozen=True)
class EvcSettings:
    """Everything one run needs, resolved from CLI flags, config files and env."""

    datacenter: str
    cluster: str
    vm: str
    baseline: str = DEFAULT_EVC_MODE

    host: str = ""
    user: str = ""
    password: str = ""
    port: int = 443
    insecure: bool = False

    timeout: Optional[float] = None
    dry_run: bool = False
    list_baselines: bool = False
    json_output: bool = False
    progress: bool = True

    @classmethod
    def from_args(
        cls,
        args: argparse.Namespace,
        conf: Optional[Mapping[str, Any]] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "EvcSettings":
        cfg = dict(conf or {})
        # CLI connection flags win over config keys
        for k in ("vcenter", "vc_user", "vc_password_env", "vc_port"):
            v = getattr(args, k, None)
            if v:
                cfg[k] = v
        if getattr(args, "insecure", False):
            cfg["vc_insecure"] = True
        creds = resolve_vsphere_creds(cfg, env)
        return cls(
            datacenter=(getattr(args, "dc", None) or "").strip(),
            cluster=(getattr(args, "cluster", None) or "").strip(),
            vm=(getattr(args, "vm", None) or "").strip(),
            baseline=getattr(args, "evcmode", None) or DEFAULT_EVC_MODE,
            host=creds.host,
            user=creds.user,
            password=creds.password,
            port=creds.port or 443,
            insecure=creds.insecure,
            timeout=getattr(args, "timeout", None),
            dry_run=bool(getattr(args, "dry_run", False)),
            list_baselines=bool(getattr(args, "list_baselines", False)),
            json_output=bool(getattr(args, "json", False)),
            progress=not bool(getattr(args, "no_progress", False)),
        )

    def missing(self) -> List[str]:
        out: List[str] = []
        if not self.datacenter:
            out.append("--dc")
        if not self.cluster:
            out.append("--cluster")
        if not self.vm and not self.list_baselines:
            out.append("--vm")
        if not self.host:
            out.append(ENV_URL)
        if not self.user:
            out.append(ENV_USER)
        if not self.password:
            out.append(ENV_PASSWORD)
        return out

    def validate(self) -> "EvcSettings":
        missing = self.missing()
        if missing:
            raise ConfigurationError(
                msg=f"missing required parameters: {', '.join(missing)}",
                context={"missing": missing},
            )
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(msg=f"--timeout must be positive, got {self.timeout}", context={"timeout": self.timeout})
        return self
