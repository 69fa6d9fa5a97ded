from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Callable, Iterable, Optional, Sequence

from cedeploy.common.errors import ConfigurationError
from cedeploy.core.config import CEConfiguration
from cedeploy.runtime.cleanup import CleanupManager, CleanupReport
from cedeploy.runtime.kubernetes import create_core_api

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = ("eaprc",)


def configure_logging(verbose: bool) -> None:
    """Configure root logging based on verbosity level."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s %(message)s",
    )


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Delete replication controllers, pods and services left behind by CE test deployments."
    )
    parser.add_argument(
        "--prefix",
        action="append",
        default=[],
        help="Replication controller / pod name prefix to delete. Can be provided multiple times "
        f"(default: {', '.join(DEFAULT_PREFIXES)}).",
    )
    parser.add_argument(
        "--service",
        action="append",
        default=[],
        help="Service name to delete. Can be provided multiple times.",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help="Namespace to clean (default: KUBERNETES_NAMESPACE or 'default').",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show actions without executing them.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def cleanup_cluster(
    *,
    prefixes: Iterable[str] = DEFAULT_PREFIXES,
    services: Iterable[str] = (),
    dry_run: bool = False,
    configuration: Optional[CEConfiguration] = None,
    core_api_factory: Optional[Callable[[CEConfiguration], Any]] = None,
) -> Optional[CleanupReport]:
    """
    Delete leftover deployment resources.

    Args:
        prefixes: Replication controller and pod name prefixes.
        services: Service names.
        dry_run: When True, only log intended actions.
        configuration: Optional configuration, loaded from the environment otherwise.
        core_api_factory: Builds the Kubernetes API from the configuration.

    Returns:
        The cleanup report, or None on a dry run.

    Raises:
        ConfigurationError: When the Kubernetes master is not configured.
    """
    config = configuration or CEConfiguration.from_env()
    if not config.kubernetes_master:
        raise ConfigurationError("Null Kubernetes master!")

    prefixes = list(prefixes)
    services = list(services)
    if dry_run:
        for service in services:
            logger.info("[dry-run] Would delete service: %s", service)
        for prefix in prefixes:
            logger.info("[dry-run] Would delete replication controllers and pods matching: %s*", prefix)
        return None

    core_api = (core_api_factory or create_core_api)(config)
    manager = CleanupManager(core_api, config.namespace, logger=logger)
    report = manager.clean_all(*prefixes, services=tuple(services))
    for failure in report.failures:
        logger.warning("Could not delete %s [%s]: %s", failure.kind, failure.name, failure.error)
    return report


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the cleanup routine."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)

    overrides = {"namespace": args.namespace} if args.namespace else {}
    try:
        report = cleanup_cluster(
            prefixes=args.prefix or DEFAULT_PREFIXES,
            services=args.service,
            dry_run=args.dry_run,
            configuration=CEConfiguration.from_env(**overrides),
        )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    if report is None or report.success:
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
