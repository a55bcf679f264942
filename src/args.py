"""Argument parsing functionality for peeralign."""

import argparse

from constants import Constants


def _add_common_options(parser):
    """Options shared by every subcommand."""
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help=f"Path to a YAML configuration file (default: {Constants.CONFIG_FILE} if present)",
                        action="store",
                        type=str)
    parser.add_argument("-C", "--project-dir",
                        dest="PROJECT_DIR",
                        help="Project directory containing package.json and node_modules",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=Constants.LOG_LEVELS)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--root-package",
                        dest="ROOT_PACKAGE",
                        help=f"Root package every family member peer-depends on (default: {Constants.ROOT_PACKAGE})",
                        action="store",
                        type=str)
    parser.add_argument("--family-prefix",
                        dest="FAMILY_PREFIX",
                        help=f"Name prefix shared by family packages (default: {Constants.FAMILY_PREFIX})",
                        action="store",
                        type=str)
    parser.add_argument("--registry",
                        dest="REGISTRY_URL",
                        help=f"npm registry base URL (default: {Constants.REGISTRY_URL_NPM})",
                        action="store",
                        type=str)
    parser.add_argument("--package-manager",
                        dest="PACKAGE_MANAGER",
                        help="Package manager used to install",
                        action="store",
                        type=str.lower,
                        choices=Constants.SUPPORTED_PACKAGE_MANAGERS)
    parser.add_argument("--version-order",
                        dest="VERSION_ORDER",
                        help="Trust registry version order, or re-sort candidates by semver",
                        action="store",
                        type=str.lower,
                        choices=Constants.VERSION_ORDERS)


def build_parser():
    """Build the top-level parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="peeralign",
        description="Keep a family of peer-dependent packages aligned with their root package",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    install = subparsers.add_parser("install", help="Install family packages compatible with the installed root")
    _add_common_options(install)
    install.add_argument("packages",
                         metavar="PACKAGE",
                         help="Family packages to install, optionally as name@range",
                         nargs="+")
    save_group = install.add_mutually_exclusive_group()
    save_group.add_argument("--save",
                            dest="SAVE",
                            help="Save into the dependencies",
                            action="store_true")
    save_group.add_argument("--save-dev",
                            dest="SAVE_DEV",
                            help="Save into the dev dependencies",
                            action="store_true")
    save_group.add_argument("--save-peer",
                            dest="SAVE_PEER",
                            help="Save into the peer dependencies",
                            action="store_true")
    install.add_argument("--exclude-peers",
                         dest="EXCLUDE_PEERS",
                         help="Do not install family peers discovered in the monorepo",
                         action="store_true")
    install.add_argument("--dedupe",
                         dest="DEDUPE",
                         help="Run the package manager's dedupe afterwards",
                         action="store_true")

    update = subparsers.add_parser("update", help="Update the root package and realign installed family packages")
    _add_common_options(update)
    update.add_argument("version",
                        metavar="VERSION",
                        help="Root package version or dist-tag to update to",
                        nargs="?",
                        default="latest")
    update.add_argument("--dedupe",
                        dest="DEDUPE",
                        help="Run the package manager's dedupe afterwards",
                        action="store_true")

    doctor = subparsers.add_parser("doctor", help="Audit installed family packages against the installed root")
    _add_common_options(doctor)
    doctor.add_argument("--error-on-warnings",
                        dest="ERROR_ON_WARNINGS",
                        help="Exit with a non-zero status code if incompatibilities are found.",
                        action="store_true")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
