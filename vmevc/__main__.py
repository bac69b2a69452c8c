#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import sys

from .cli.argument_parser import parse_args_with_config
from .core.exceptions import EvcError, Fatal, format_exception_for_cli
from .orchestrator.orchestrator import Orchestrator


def main(argv=None) -> None:
    # Phase 1: parse. Config loading raises Fatal via U.die(), which already logged it.
    try:
        args, conf, logger = parse_args_with_config(argv)
    except Fatal as e:
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        print("Interrupted by user (Ctrl+C).", file=sys.stderr)
        raise SystemExit(130)

    # Phase 2: run workflow. Exactly one diagnostic line on failure.
    try:
        rc = Orchestrator(logger, args, conf).run()
    except EvcError as e:
        logger.error(format_exception_for_cli(e, verbose=getattr(args, "verbose", 0)))
        rc = e.code
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C).")
        rc = 130

    raise SystemExit(int(rc))


if __name__ == "__main__":
    main()
