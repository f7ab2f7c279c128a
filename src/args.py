"""Argument parsing functionality for Depo."""

import argparse


def _add_common(parser):
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to the configuration file (default: <plugins-dir>/Depo/config.yml)",
                        action="store",
                        type=str)
    parser.add_argument("-p", "--plugins-dir",
                        dest="PLUGINS_DIR",
                        help="Server plugins directory",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not output to console.",
                        action="store_true")


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depo",
        description="Depo - plugin dependency resolver for Minecraft servers",
        add_help=True,
    )
    _add_common(parser)
    sub = parser.add_subparsers(dest="action", required=True)

    scan = sub.add_parser("scan", help="Scan plugins and install missing dependencies")
    scan.add_argument("--error-on-warnings",
                      dest="ERROR_ON_WARNINGS",
                      help="Exit with a non-zero status code if conflicts remain.",
                      action="store_true")

    sub.add_parser("status", aliases=["s"], help="Show installed, missing and conflicting dependencies")
    sub.add_parser("tree", help="Show which plugin declares which dependency")

    resolve = sub.add_parser("resolve", help="Settle a conflict for one dependency")
    resolve.add_argument("DEP", help="Dependency name")
    resolve.add_argument("RESOLVE_ACTION",
                         choices=["ignore", "relax", "override"],
                         type=str.lower,
                         help="ignore it, drop its version constraint, or pin a download URL")
    resolve.add_argument("URL", nargs="*", help="Override URL (for 'override')")

    soft = sub.add_parser("soft", help="List or install soft dependencies")
    soft.add_argument("SOFT_ACTION", nargs="?", default="list",
                      choices=["list", "install"], type=str.lower)
    soft.add_argument("TARGETS", nargs="*",
                      help="Names, 1-based indices from 'soft list', comma lists, or 'all'")

    download = sub.add_parser("download", aliases=["dl"], help="Download a plugin manually")
    download.add_argument("SOURCE", choices=["direct", "github"], type=str.lower)
    download.add_argument("TARGET", help="URL for direct, owner/repo for github")
    download.add_argument("FILTER", nargs="*", help="Asset name filter (github only)")

    ns = parser.parse_args(argv)
    ns.action = {"s": "status", "dl": "download"}.get(ns.action, ns.action)
    return ns
