# vmevc/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


def _safe_int(x: Any, default: int = 1) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _one_line(s: str, limit: int = 600) -> str:
    s = (s or "").strip().replace("\r", " ").replace("\n", " ")
    s = " ".join(s.split())
    return s if len(s) <= limit else (s[: limit - 3] + "...")


@dataclass(eq=False)
class EvcError(Exception):
    """
    Base project error with:
      - stable fields for reporting/JSON
      - step: which workflow step failed (preflight, connect, inventory, ...)
      - detail: collaborator-reported text, kept verbatim
      - readable __str__ (what users see)
    """
    code: int = 1
    msg: str = "error"
    cause: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None
    step: Optional[str] = None
    detail: Optional[str] = None

    def __post_init__(self) -> None:
        self.code = _safe_int(self.code, default=1)
        self.msg = _one_line(self.msg)
        super().__init__(self.msg)

    def user_message(self, *, include_context: bool = False, include_cause: bool = False) -> str:
        """
        Human-friendly message for CLI output/logs.
        """
        base = self.msg or self.__class__.__name__
        parts = [f"{self.step}: {base}" if self.step else base]

        if include_context and self.context:
            kv = ", ".join(f"{k}={self.context[k]!r}" for k in sorted(self.context.keys()))
            parts.append(f"[{kv}]")

        if include_cause and self.cause is not None:
            parts.append(f"(cause: {type(self.cause).__name__}: {_one_line(str(self.cause))})")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.user_message(include_context=False, include_cause=False)

    def to_dict(self, *, include_cause: bool = False) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.__class__.__name__,
            "code": self.code,
            "step": self.step,
            "message": self.msg,
            "detail": self.detail,
            "context": self.context or {},
        }
        if include_cause and self.cause is not None:
            d["cause"] = {"type": type(self.cause).__name__, "message": _one_line(str(self.cause))}
        return d


class Fatal(EvcError):
    """
    User-facing fatal error (exit code is honored by top-level main()).
    """
    pass


@dataclass(eq=False)
class ConfigurationError(Fatal):
    """Required flag, config key or environment variable missing."""
    code: int = 2
    step: Optional[str] = "preflight"


@dataclass(eq=False)
class VsphereConnectionError(Fatal):
    """Session could not be established (login, TLS, network)."""
    code: int = 3
    step: Optional[str] = "connect"


@dataclass(eq=False)
class NotFoundError(Fatal):
    """Inventory name did not resolve, or resolved to more than one object."""
    code: int = 4
    step: Optional[str] = "inventory"

    @property
    def ambiguous(self) -> bool:
        return bool((self.context or {}).get("ambiguous"))


@dataclass(eq=False)
class UnsupportedBaselineError(Fatal):
    code: int = 5
    step: Optional[str] = "resolve-masks"


@dataclass(eq=False)
class ApplyRejectedError(Fatal):
    """ApplyEvcModeVM_Task was refused synchronously."""
    code: int = 6
    step: Optional[str] = "apply"


@dataclass(eq=False)
class OperationFailedError(Fatal):
    """The apply task reached the error state on the server."""
    code: int = 7
    step: Optional[str] = "await"


@dataclass(eq=False)
class OperationCancelledError(Fatal):
    """
    The wait was cancelled (deadline or interrupt). The server-side task is
    not cancelled with it; its final state is unknown.
    """
    code: int = 124
    step: Optional[str] = "await"


@dataclass(eq=False)
class VMwareError(EvcError):
    """
    vSphere/vCenter operation failed outside the classified steps.
    Use for pyvmomi / SDK errors.
    """
    code: int = 50


def wrap_vmware(
    msg: str, exc: Optional[BaseException] = None, code: int = 50, step: Optional[str] = None, **context: Any
) -> VMwareError:
    return VMwareError(code=code, msg=msg, cause=exc, context=context or None, step=step, detail=fault_text(exc))


def fault_text(exc: Optional[BaseException]) -> Optional[str]:
    """
    Text of a vmodl.MethodFault (its .msg), or str() of any other exception.
    """
    if exc is None:
        return None
    msg = getattr(exc, "msg", None)
    if isinstance(msg, str) and msg:
        return msg
    localized = getattr(exc, "localizedMessage", None)
    if isinstance(localized, str) and localized:
        return localized
    return str(exc) or type(exc).__name__


def format_exception_for_cli(e: BaseException, *, verbose: int = 0) -> str:
    """
    One-liner output for CLI.

    verbose=0: just message
    verbose=1: message + compact context (if any)
    verbose>=2: message + context + cause
    """
    if isinstance(e, EvcError):
        return e.user_message(
            include_context=(verbose >= 1),
            include_cause=(verbose >= 2),
        )

    if verbose >= 2:
        return f"{type(e).__name__}: {_one_line(str(e))}"
    return _one_line(str(e)) or type(e).__name__
