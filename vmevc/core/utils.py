from __future__ import annotations
import json
import logging
from typing import Any, Mapping

from .exceptions import Fatal

_SECRET_KEYS = ("password", "secret", "token")


class U:
    @staticmethod
    def die(logger: logging.Logger, msg: str, code: int = 1) -> None:
        logger.error(msg)
        raise Fatal(code, msg)
    @staticmethod
    def json_dump(obj: Any) -> str:
        try:
            return json.dumps(obj, indent=2, sort_keys=True, default=str)
        except Exception:
            return repr(obj)
    @staticmethod
    def mask_secrets(conf: Mapping[str, Any]) -> dict:
        out = {}
        for k, v in conf.items():
            if v and any(s in str(k).lower() for s in _SECRET_KEYS) and not str(k).endswith("_env"):
                out[k] = "***"
            else:
                out[k] = v
        return out
