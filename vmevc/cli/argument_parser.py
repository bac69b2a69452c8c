from __future__ import annotations
import argparse

from ..core.logger import c
from ..config.config_loader import Config
from .. import __version__
from ..orchestrator.settings import DEFAULT_EVC_MODE

YAML_EXAMPLE = r"""# vmevc config
# Run:
# GOVC_URL=vc.example.com GOVC_USERNAME=administrator@vsphere.local GOVC_PASSWORD=... \
#   vmevc --config evc.yaml
#
# Any flag may be given as a key (dashes or underscores); CLI flags win.
dc: DC1
cluster: Cluster-A
vm: build-agent-07
evcmode: intel-sandybridge
timeout: 600 # stop waiting after 10 minutes (server task keeps running)
# vcenter: vc.example.com # instead of GOVC_URL
# vc_user: administrator@vsphere.local # instead of GOVC_USERNAME
# vc_password_env: VC_PASS # read the password from this env var
# vc_insecure: true # instead of GOVC_INSECURE=1
"""

ENV_HELP = """Environment:
  GOVC_URL       vCenter host, host:port or https://host[:port]/sdk (required)
  GOVC_USERNAME  vCenter user (required)
  GOVC_PASSWORD  vCenter password (required)
  GOVC_INSECURE  1/true to skip TLS certificate verification
"""


class CLI:
    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        epilog = (
            c(ENV_HELP, "cyan") +
            "\n" +
            c("YAML example:\n", "cyan", ["bold"]) +
            c(YAML_EXAMPLE, "cyan")
        )
        p = argparse.ArgumentParser(
            prog="vmevc",
            description=c("vmevc: apply a cluster EVC baseline to a single VM", "green", ["bold"]),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=epilog,
        )
        p.add_argument("--config", action="append", default=[], help="YAML/JSON config file (repeatable; later overrides earlier).")
        p.add_argument("--dump-config", action="store_true", help="Print merged normalized config (secrets masked) and exit.")
        p.add_argument("--version", action="version", version=__version__)
        p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv")
        p.add_argument("--log-file", default=None, help="Write logs to file.")

        p.add_argument("--dc", default=None, help="vSphere datacenter (required)")
        p.add_argument("--cluster", default=None, help="vSphere cluster whose EVC modes are used (required)")
        p.add_argument("--vm", default=None, help="VM name, looked up inside --dc (required)")
        p.add_argument("--evcmode", default=DEFAULT_EVC_MODE, help=f"EVC mode key (default: {DEFAULT_EVC_MODE})")

        p.add_argument("--vcenter", default=None, help="vCenter host (overrides GOVC_URL)")
        p.add_argument("--vc-user", dest="vc_user", default=None, help="vCenter user (overrides GOVC_USERNAME)")
        p.add_argument("--vc-password-env", dest="vc_password_env", default=None, help="Env var holding the vCenter password")
        p.add_argument("--port", "--vc-port", dest="vc_port", type=int, default=None, help="vCenter HTTPS port (default: 443)")
        p.add_argument("--insecure", action="store_true", help="Skip TLS certificate verification")

        p.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the apply task (server task is not cancelled)")
        p.add_argument("--dry-run", action="store_true", help="Resolve and print the feature masks; do not apply them.")
        p.add_argument("--list-baselines", action="store_true", help="Print the EVC modes supported by --cluster and exit.")
        p.add_argument("--json", action="store_true", help="Print masks/baselines as JSON.")
        p.add_argument("--no-progress", action="store_true", help="Do not show a progress bar while waiting.")
        return p


def parse_args_with_config(argv=None, logger=None):
    """Two-phase parse.

    Phase 0: parse ONLY global flags needed to find config/logging
    Phase 1: load+merge config files and apply as argparse defaults
    Phase 2: full parse_args with defaults applied

    Required values are checked later by EvcSettings.validate(), so a missing
    --dc/--cluster/--vm is a ConfigurationError, not an argparse usage error.

    Returns: (args, merged_config_dict, logger)
    """
    parser = CLI.build_parser()

    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        from ..core.logger import Log  # local import to avoid cycles
        logger = Log.setup(getattr(args0, "verbose", 0), getattr(args0, "log_file", None))

    conf = {}
    cfgs = getattr(args0, "config", None) or []
    if cfgs:
        cfgs = Config.expand_configs(logger, list(cfgs))
        conf = Config.load_many(logger, cfgs)
        Config.apply_as_defaults(logger, parser, conf)

    args = parser.parse_args(argv)
    return args, conf, logger
