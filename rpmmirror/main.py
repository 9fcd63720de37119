#!/usr/bin/env python3

import sys
import os
import argparse
import logging
from typing import List, Optional

from . import __version__
from .config.manager import ConfigManager, MirrorConfig
from .errors import (
    ConfigurationError, DecompressionError, FetchError, IntegrityError,
    MetadataError, MirrorError, StorageError,
)
from .storage.manager import StorageManager
from .sync.runner import MirrorReport, RepositoryMirror
from .transport.client import HttpClient

# Exit codes, following the sysexits-style ranges
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 66
EXIT_NETWORK_ERROR = 68
EXIT_DATA_ERROR = 70
EXIT_PARTIAL_SUCCESS = 71
EXIT_STORAGE_ERROR = 73
EXIT_INTERRUPTED = 130

EXCEPTION_EXIT_CODES = [
    (ConfigurationError, EXIT_CONFIG_ERROR),
    (FetchError, EXIT_NETWORK_ERROR),
    (IntegrityError, EXIT_DATA_ERROR),
    (MetadataError, EXIT_DATA_ERROR),
    (DecompressionError, EXIT_DATA_ERROR),
    (StorageError, EXIT_STORAGE_ERROR),
]

def exit_code_for(error: BaseException) -> int:
    for error_type, code in EXCEPTION_EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return EXIT_FAILURE

def setup_logging(verbose: int = 1, log_file: Optional[str] = None):
    """Configure logging for the application

    verbose 0 only reports warnings and errors, 1 reports progress,
    2 and above adds per-file detail.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=log_format,
        handlers=handlers,
        force=True
    )

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING if level > logging.DEBUG else logging.INFO)

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        prog="rpm-mirror",
        description="RPM Repository Mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sync https://example.org/repo/ /srv/mirror/repo
  %(prog)s sync -c 20 --size-check https://example.org/repo/ /srv/mirror/repo
  %(prog)s sync --metadata-only https://example.org/repo/ /srv/mirror/repo
  %(prog)s storage --info /srv/mirror/repo
  %(prog)s storage --cleanup /srv/mirror/repo
        """
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file",
        default=None
    )

    parser.add_argument(
        "--verbose", "-v",
        type=int,
        default=None,
        help="Verbosity level (0 to silence)"
    )

    parser.add_argument(
        "--log-file", "-l",
        default=None,
        help="File to write logs to (logs still go to stdout)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Mirror a repository")
    sync_parser.add_argument("repo_url", nargs="?", help="Remote URL to mirror the repository from")
    sync_parser.add_argument("destination", nargs="?", help="Local folder to mirror the repository to")
    sync_parser.add_argument(
        "--metadata-only", "-m",
        action="store_true",
        default=None,
        help="Only download repository metadata"
    )
    sync_parser.add_argument(
        "--data-only", "-d",
        action="store_true",
        default=None,
        help="Only download repository data"
    )
    sync_parser.add_argument(
        "--concurrent-downloads", "-c",
        type=int,
        default=None,
        help="Number of concurrent downloads (default: 10)"
    )
    sync_parser.add_argument(
        "--size-check",
        action="store_true",
        default=None,
        help="Don't verify file hash, only compare sizes"
    )
    sync_parser.add_argument("--cert", dest="cert_file", help="Client certificate file (PEM)")
    sync_parser.add_argument("--key", dest="key_file", help="Client private key file (PEM)")
    sync_parser.add_argument(
        "--insecure-tls",
        action="store_true",
        default=None,
        help="Disable TLS check for server"
    )
    sync_parser.add_argument("--data-path", help="Path to store the data (if not inside the destination folder)")
    sync_parser.add_argument("--metadata-path", help="Path to store the metadata (if not inside the destination folder)")
    sync_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        default=None,
        help="Record failed downloads and keep going instead of stopping"
    )
    sync_parser.add_argument(
        "--no-disk-check",
        dest="check_disk_space",
        action="store_false",
        default=None,
        help="Skip the free disk space check before downloading packages"
    )

    # Storage command
    storage_parser = subparsers.add_parser("storage", help="Local storage management")
    storage_parser.add_argument("destination", nargs="?", help="Local mirror folder")
    storage_parser.add_argument("--data-path", help="Data folder (if not inside the destination folder)")
    storage_parser.add_argument("--metadata-path", help="Metadata folder (if not inside the destination folder)")
    storage_parser.add_argument(
        "--info",
        action="store_true",
        help="Show storage information"
    )
    storage_parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Remove partial downloads left by interrupted runs"
    )

    return parser

SYNC_OPTIONS = (
    "repo_url", "destination", "metadata_only", "data_only", "concurrent_downloads",
    "size_check", "cert_file", "key_file", "insecure_tls", "data_path", "metadata_path",
    "continue_on_error", "check_disk_space",
)
STORAGE_OPTIONS = ("destination", "data_path", "metadata_path")

def collect_overrides(args: argparse.Namespace) -> dict:
    """Command-line values that should override the config file"""
    names = ["verbose", "log_file"]
    if args.command == "sync":
        names.extend(SYNC_OPTIONS)
    elif args.command == "storage":
        names.extend(STORAGE_OPTIONS)
    return {name: getattr(args, name, None) for name in names}

def print_report(report: MirrorReport):
    print(f"\nRevision: {report.revision}")
    if report.packages is not None:
        packages = report.packages
        print(f"Packages: {packages.completed}/{packages.total} "
              f"({packages.verified} up to date, {packages.downloaded} downloaded, {packages.failed} failed)")
    print(f"Metadata files: {report.metadata_verified} up to date, {report.metadata_downloaded} downloaded")
    if report.repomd_written:
        print("repomd.xml: updated")
    if report.removed_partials:
        print(f"Removed {report.removed_partials} stale partial downloads")

    if report.failures:
        print("\nFailed:")
        for failure in report.failures:
            print(f"  ✗ {failure.name}: {failure.error}")

def cmd_sync(config: MirrorConfig) -> int:
    """Handle sync command"""
    errors = config.validate()
    if errors:
        raise ConfigurationError("; ".join(errors))

    with HttpClient.from_config(config) as client:
        report = RepositoryMirror(config, client).run()

    print_report(report)
    return EXIT_SUCCESS if report.succeeded else EXIT_PARTIAL_SUCCESS

def cmd_storage(args, storage_manager: StorageManager) -> int:
    """Handle storage command"""
    if args.info:
        storage_info = storage_manager.get_storage_info()
        print("=== Storage Information ===")
        if not storage_info['paths']:
            print("No mirror found")

        for path_info in storage_info['paths']:
            print(f"\nPath: {path_info['path']}")
            print(f"  Type: {path_info.get('type', 'unknown')}")
            print(f"  Total size: {path_info.get('total_size', 0) / (1024**3):.1f} GB")
            print(f"  Used: {path_info.get('used_percent', 0):.1f}%")
            print(f"  Free space: {path_info.get('free_space', 0) / (1024**3):.1f} GB")
            print(f"  Mirror size: {path_info.get('directory_size', 0) / (1024**3):.1f} GB")

    elif args.cleanup:
        print("Removing partial downloads...")
        result = storage_manager.cleanup_partial_downloads()

        print(f"Cleanup completed:")
        print(f"  Files deleted: {result['deleted_files']}")
        print(f"  Space freed: {result['freed_space'] / (1024**2):.1f} MB")

        if result['errors']:
            print(f"  Errors: {len(result['errors'])}")
            for error in result['errors']:
                print(f"    - {error}")

    else:
        print("Error: Must specify --info or --cleanup")
        return EXIT_FAILURE

    return EXIT_SUCCESS

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_FAILURE

    try:
        config = ConfigManager(args.config).load_config(collect_overrides(args))
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error(str(e))
        return EXIT_CONFIG_ERROR

    setup_logging(config.verbose, config.log_file)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "sync":
            return cmd_sync(config)

        elif args.command == "storage":
            if not config.metadata_path and not config.data_path:
                print("Error: Must specify a destination")
                return EXIT_FAILURE
            return cmd_storage(args, StorageManager(config))

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED

    except MirrorError as e:
        logger.error(str(e))
        return exit_code_for(e)

    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if config.verbose >= 2:
            import traceback
            traceback.print_exc()
        return EXIT_FAILURE

    return EXIT_FAILURE

if __name__ == "__main__":
    sys.exit(main())
