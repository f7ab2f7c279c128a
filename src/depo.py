"""Depo - plugin dependency resolver for Minecraft servers.

    Returns:
        int: Exit code
"""
import logging
import sys
from pathlib import Path

from constants import ExitCodes
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from resolver import ConfigError, DependencyResolver, load_config
from resolver.config import remove_config_value, set_config_value

logger = logging.getLogger(__name__)


def setup_logging(args):
    """Configure logging based on CLI arguments."""
    configure_logging(level=args.LOG_LEVEL, quiet=args.QUIET)
    if args.LOG_FILE:
        file_handler = logging.FileHandler(args.LOG_FILE)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", args.LOG_FILE)


def _emit(lines):
    for line in lines:
        print(line)


def cmd_scan(resolver, args):
    report = resolver.scan_and_resolve()
    if report.conflicts and args.ERROR_ON_WARNINGS:
        logger.error("Conflicts present, exiting with non-zero status code.")
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def cmd_resolve(resolver, args):
    """Persist an administrator decision for one dependency."""
    path = resolver.config.path
    dep = args.DEP
    if args.RESOLVE_ACTION == "ignore":
        set_config_value(path, ("overrides", dep), "")
        print(f"{dep} will be ignored.")
    elif args.RESOLVE_ACTION == "relax":
        remove_config_value(path, ("version-constraints", dep))
        print(f"Removed version constraint for {dep}.")
    else:
        url = " ".join(args.URL).strip()
        if not url:
            logger.error("Usage: depo resolve <dep> override <url>")
            return ExitCodes.FILE_ERROR.value
        set_config_value(path, ("overrides", dep), url)
        print(f"{dep} will be downloaded from {url}.")
    return ExitCodes.SUCCESS.value


def cmd_soft(resolver, args):
    if args.SOFT_ACTION == "list":
        print("Soft dependencies:")
        info = resolver.scan_dependency_map_detailed()
        satisfied = resolver.list_satisfied_names()
        missing = resolver.soft_missing()
        for dep in sorted(info.soft):
            if dep in missing:
                print(f"  {missing.index(dep) + 1}. {dep} (missing)")
            else:
                state = "installed" if dep in satisfied else "ignored"
                print(f"  -  {dep} ({state})")
        return ExitCodes.SUCCESS.value

    if not args.TARGETS:
        logger.error("Usage: depo soft install <names|indices|all>")
        return ExitCodes.FILE_ERROR.value
    results = resolver.install_soft(args.TARGETS)
    if not results:
        print("No matching missing soft dependencies.")
        return ExitCodes.SUCCESS.value
    for dep, ok in results.items():
        print(f"{dep}: {'installed, restart required' if ok else 'failed'}")
    return ExitCodes.SUCCESS.value if all(results.values()) else ExitCodes.EXIT_WARNINGS.value


def cmd_download(resolver, args):
    if args.SOURCE == "direct":
        name = resolver.download_direct(args.TARGET)
    else:
        asset_filter = " ".join(args.FILTER).strip() or None
        try:
            name = resolver.download_github(args.TARGET, asset_filter)
        except ValueError as exc:
            logger.error("%s", exc)
            return ExitCodes.FILE_ERROR.value
    if name is None:
        print("Download failed.")
        return ExitCodes.CONNECTION_ERROR.value
    print(f"Installed {name}. Restart the server to load it.")
    return ExitCodes.SUCCESS.value


def run(args):
    """Execute the selected action and return the exit code."""
    try:
        config = load_config(
            Path(args.CONFIG) if args.CONFIG else None,
            Path(args.PLUGINS_DIR) if args.PLUGINS_DIR else None,
        )
    except ConfigError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value

    if is_debug_enabled(logger):
        logger.debug(
            "CLI started",
            extra=extra_context(
                event="function_entry",
                component="cli",
                action=args.action,
                target=str(config.plugins_dir),
            ),
        )

    resolver = DependencyResolver(config)
    p = config.platform
    logger.info("Running on %s %s (loader=%s).", p.engine, p.game_version, p.loader)

    if args.action == "scan":
        return cmd_scan(resolver, args)
    if args.action == "status":
        _emit(resolver.status())
        return ExitCodes.SUCCESS.value
    if args.action == "tree":
        _emit(resolver.tree())
        return ExitCodes.SUCCESS.value
    try:
        if args.action == "resolve":
            return cmd_resolve(resolver, args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value
    if args.action == "soft":
        return cmd_soft(resolver, args)
    if args.action == "download":
        return cmd_download(resolver, args)
    logger.error("Unknown action: %s", args.action)
    return ExitCodes.FILE_ERROR.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    setup_logging(args)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
