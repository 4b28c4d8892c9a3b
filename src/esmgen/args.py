"""Argument parsing for esmgen."""

import argparse

from esmgen import __version__

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _add_common(parser):
    parser.add_argument("--project-root",
                        dest="PROJECT_ROOT",
                        help="Project directory holding the manifest (default: current directory)",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel", "--log-level",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: INFO, or ESMGEN_LOG_LEVEL)",
                        action="store",
                        type=str.upper,
                        choices=LOG_LEVELS)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)


def _add_dir(parser, help_text):
    parser.add_argument("--dir",
                        dest="DIR",
                        help=help_text,
                        action="store",
                        type=str)


def _add_serve_options(parser):
    parser.add_argument("--port",
                        dest="PORT",
                        help="Port to serve on (default: 3000)",
                        action="store",
                        type=int)
    parser.add_argument("--host",
                        dest="HOST",
                        help="Host to bind the server to (default: 127.0.0.1)",
                        action="store",
                        type=str)
    parser.add_argument("--entry-file",
                        dest="ENTRY_FILE",
                        help="File served at / instead of the generated index; "
                             "a relative path is taken from the served directory (--dir)",
                        action="store",
                        type=str)
    parser.add_argument("--max-port-attempts",
                        dest="MAX_PORT_ATTEMPTS",
                        help="Give up after this many ports in use (default: unbounded)",
                        action="store",
                        type=int)


def _add_conversion_options(parser):
    parser.add_argument("--registry",
                        dest="REGISTRY",
                        help="Registry to download the package from",
                        action="store",
                        type=str)
    parser.add_argument("--minify",
                        dest="MINIFY",
                        help="Minify the bundle",
                        action="store_true",
                        default=None)
    parser.add_argument("--no-transpile",
                        dest="TRANSPILE_TYPESCRIPT",
                        help="Refuse TypeScript entry points instead of transpiling them",
                        action="store_false",
                        default=None)
    parser.add_argument("--all-assets",
                        dest="INCLUDE_ALL_ASSETS",
                        help="Copy every style sheet and image, not only those next to the entry",
                        action="store_true",
                        default=None)
    parser.add_argument("--strict-entry",
                        dest="STRICT_ENTRY",
                        help="Fail when a package has no entry point",
                        action="store_true",
                        default=None)
    parser.add_argument("--esbuild",
                        dest="ESBUILD",
                        help="Path to the esbuild executable",
                        action="store",
                        type=str)


def build_parser():
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="esmgen",
        description="Convert npm packages to standalone ES modules and serve them.",
        add_help=True,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="action", metavar="command")

    download = subparsers.add_parser("download",
                                     aliases=["dl", "d"],
                                     help="Download and convert a package to ESM.")
    download.add_argument("PACKAGE", nargs="?", help="Package name")
    download.add_argument("VERSION", nargs="?", default="latest",
                          help="Version, dist-tag or range (default: latest)")
    _add_dir(download, "Directory for ESM modules (default: ./esm)")
    _add_conversion_options(download)
    download.add_argument("--serve",
                          dest="SERVE",
                          help="Serve the ESM directory after processing",
                          action="store_true")
    _add_serve_options(download)
    _add_common(download)
    download.set_defaults(action="download")

    install = subparsers.add_parser("install",
                                    aliases=["i"],
                                    help="Convert every package listed in the manifest.")
    _add_dir(install, "Directory for ESM modules (default: ./esm)")
    _add_conversion_options(install)
    _add_common(install)
    install.set_defaults(action="install")

    serve = subparsers.add_parser("serve",
                                  aliases=["s"],
                                  help="Serve the ESM directory.")
    _add_dir(serve, "Directory of ESM modules to serve (default: ./esm)")
    _add_serve_options(serve)
    _add_common(serve)
    serve.set_defaults(action="serve")

    remove = subparsers.add_parser("remove",
                                   aliases=["rm"],
                                   help="Remove a converted package.")
    remove.add_argument("PACKAGE", help="Package name")
    _add_dir(remove, "Directory of ESM modules (default: ./esm)")
    _add_common(remove)
    remove.set_defaults(action="remove")

    init = subparsers.add_parser("init", help="Create an empty manifest in the project root.")
    _add_common(init)
    init.set_defaults(action="init")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
