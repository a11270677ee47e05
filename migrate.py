#!/usr/bin/env python3
"""
Confluence Space Downloader - Main CLI Entry Point

This script provides the command-line interface for downloading every page of
one or more Confluence spaces, converting their Atlassian Document Format
bodies and comment threads to Markdown, and writing them to a local
directory tree that mirrors the page hierarchy.
"""

import argparse
import logging
import sys
from typing import List, Optional

import requests
import yaml

from config_loader import ConfigLoader, get_nested
from confluence_client import ConfluenceClient
from logger import log_config, log_section, setup_logging
from orchestrator import DownloadOrchestrator

# Version
__version__ = "1.0.0"


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='confluence-download',
        description="Download Confluence spaces and convert pages with comments to Markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Download every configured space
  confluence-download --config config.yaml

  # Restrict to some spaces
  confluence-download --spaces "ENG,HR"

  # Custom output directory and smaller search pages
  confluence-download --output-dir ./export --batch-size 100

  # Save the run report
  confluence-download --report-path download_report.json

  # Verbose logging
  confluence-download -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )

    parser.add_argument(
        '--spaces',
        type=parse_space_keys,
        help='Comma-separated space keys to download (e.g., ENG,HR)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Output directory (overrides export.output_directory)'
    )

    parser.add_argument(
        '--batch-size',
        type=positive_int,
        help='Results per search request (overrides download.batch_size)'
    )

    parser.add_argument(
        '--report-path',
        type=str,
        help='Write the run report to this file (.json or .csv)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also log to this file (rotated at 10 MB)'
    )

    parser.add_argument(
        '--check-connection',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='Fetch each space once before downloading (default: enabled)'
    )

    parser.add_argument(
        '--progress',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='Show a progress bar while downloading (default: enabled)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def parse_space_keys(value: str) -> List[str]:
    """Argparse type for a comma-separated list of space keys."""
    space_keys = [key.strip() for key in value.split(',') if key.strip()]
    if not space_keys:
        raise argparse.ArgumentTypeError("No valid space keys provided")
    return space_keys


def positive_int(value: str) -> int:
    """Argparse type for a positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"Must be a positive integer: {value}")
    return number


def check_connectivity(client: ConfluenceClient, space_keys: List[str], logger: logging.Logger) -> bool:
    """Fetch each space record once to verify credentials and space keys."""
    logger.info("Testing Confluence connectivity")
    for space_key in space_keys:
        try:
            space = client.get_space(space_key)
            logger.info(f"Space {space_key}: {space.get('name', space_key)}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Confluence connectivity test failed for space {space_key}: {str(e)}")
            return False
    return True


def run_download(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the complete download pipeline."""
    logger.info("Starting download pipeline")

    try:
        client = ConfluenceClient.from_config(config)
        orchestrator = DownloadOrchestrator(config, client=client, show_progress=args.progress)
        space_keys = orchestrator.configured_spaces()

        if args.check_connection and not check_connectivity(client, space_keys, logger):
            return 1

        report = orchestrator.run(space_keys)

        print("\n" + orchestrator.format_report(report))

        if args.report_path:
            orchestrator.save_report(report, args.report_path)

        errors = report.get('summary', {}).get('total_errors', 0)
        if errors > 0:
            logger.warning(f"Download completed with {errors} errors")
            return 1

        logger.info("Download completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.error("Download interrupted by user")
        return 130
    except requests.exceptions.RequestException as e:
        logger.error(f"Download failed: {str(e)}")
        return 1
    except Exception as e:
        logger.error(f"Download failed: {str(e)}", exc_info=True)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        # Setup minimal logging for config loading
        setup_logging(verbosity=args.verbose, log_file=args.log_file)
        logger = logging.getLogger('confluence_downloader.cli')

        log_section("Confluence Space Downloader")
        logger.info(f"Version: {__version__}")

        # Load configuration
        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)

        # Merge with CLI arguments (CLI takes precedence)
        config = ConfigLoader.merge_with_args(config, args)

        ConfigLoader.validate(config)

        # Reconfigure logging with config file settings
        setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=None if args.verbose else get_nested(config, 'logging.level')
        )

        log_config(config)

        return run_download(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nDownload interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
