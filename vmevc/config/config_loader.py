from __future__ import annotations
import argparse
import glob
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ..core.utils import U


class Config:
    @staticmethod
    def load_one(logger: logging.Logger, path: str) -> Dict[str, Any]:
        p = Path(path).expanduser().resolve()
        if not p.exists():
            U.die(logger, f"Config not found: {p}", 2)
        try:
            if p.suffix.lower() == ".json":
                data = json.loads(p.read_text(encoding="utf-8"))
            else:
                data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            U.die(logger, f"Invalid YAML in config {p}: {e}", 2)
        except (OSError, ValueError) as e:
            U.die(logger, f"Failed to load config {p}: {e}", 2)
        if not isinstance(data, dict):
            U.die(logger, f"Config must be a mapping/dict: {p}", 2)
        # normalize dash keys -> underscore keys
        out: Dict[str, Any] = {}
        for k, v in data.items():
            nk = str(k).replace("-", "_")
            out[nk] = v
            if nk != k:
                logger.debug(f"Normalized config key: {k} -> {nk}")
        logger.debug(f"Loaded config {p}:\n{U.json_dump(U.mask_secrets(out))}")
        return out
    @staticmethod
    def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep-ish merge:
        - dict + dict => recurse
        - list => override replaces (not concatenated)
        - scalar => override replaces
        """
        out = dict(base)
        for k, v in override.items():
            if k in out and isinstance(out[k], dict) and isinstance(v, dict):
                out[k] = Config.merge_dicts(out[k], v)
            else:
                out[k] = v
        return out
    @staticmethod
    def load_many(logger: logging.Logger, paths: List[str]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for p in paths:
            conf = Config.merge_dicts(conf, Config.load_one(logger, p))
        return conf
    @staticmethod
    def apply_as_defaults(logger: logging.Logger, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        if not conf:
            return
        for act in parser._actions:
            dest = getattr(act, "dest", None)
            if not dest or dest not in conf:
                continue
            val = conf[dest]
            shown = "***" if "password" in dest and val else val
            logger.debug(f"[Config] default {dest}: {act.default!r} -> {shown!r}")
            act.default = val
            if getattr(act, "required", False) and val is not None:
                act.required = False
    @staticmethod
    def expand_configs(logger: logging.Logger, configs: List[str]) -> List[str]:
        expanded = []
        for c in configs:
            p = Path(c).expanduser().resolve()
            if p.is_dir():
                for pattern in ("*.yaml", "*.yml", "*.json"):
                    expanded.extend(str(f) for f in sorted(p.glob(pattern)) if f.is_file())
            elif '*' in c or '?' in c:
                expanded.extend(sorted(glob.glob(c)))
            else:
                expanded.append(c)
        logger.debug(f"Expanded configs: {expanded}")
        return expanded
