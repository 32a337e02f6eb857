"""Main CLI entry point for mvnresolve."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .errors import ResolutionError
from .formatters import OutputFormatter
from .resolver import CoordinateLike, DependencyResolver
from .settings import PROP_ALLOW_SNAPSHOTS, PROP_OFFLINE, PROP_RESET, Settings

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_level: Optional[str] = None):
    """Configure logging based on verbosity flags."""
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def parse_define(value: str):
    """Parse a ``-D key=value`` (or bare ``-D key``) argument."""
    key, sep, val = value.partition('=')
    if not key.strip():
        raise argparse.ArgumentTypeError(f"invalid property definition: {value!r}")
    return key.strip(), val if sep else ''


def build_settings(args) -> Settings:
    """Settings from -D properties and flags; flags win over properties."""
    properties: Dict[str, str] = dict(args.define or [])
    if args.offline:
        properties[PROP_OFFLINE] = 'true'
    if args.reset:
        properties[PROP_RESET] = 'true'
    if args.allow_snapshots:
        properties[PROP_ALLOW_SNAPSHOTS] = 'true'

    overrides = {}
    if args.local:
        overrides['local_repository'] = Path(args.local).expanduser().absolute()
    return Settings.load(properties=properties, repositories=args.repositories, **overrides)


def requested_coordinates(resolver: DependencyResolver, args) -> List[CoordinateLike]:
    """Coordinates given on the command line, preceded by the --pom project's dependencies with their scopes."""
    coords: List[CoordinateLike] = list(args.coords)
    if args.pom:
        pom = resolver.load_pom(Path(args.pom))
        dependencies = pom.dependencies()
        logger.info(f"Project {pom.app_identity()[0]} declares {len(dependencies)} dependencies")
        coords = dependencies + coords
    return coords


def write_output(text: str, output: str):
    if output == '-':
        sys.stdout.write(text)
    else:
        with open(output, 'w') as f:
            f.write(text)
        logger.info(f"Output written to {output}")


def handle_tree(args, resolver: DependencyResolver) -> int:
    """Handle the 'tree' subcommand."""
    coords = requested_coordinates(resolver, args)
    if not coords:
        print("Error: no coordinates given", file=sys.stderr)
        return 1
    write_output(OutputFormatter.format_tree(resolver.collect(coords, args.type)), args.output)
    return 0


def handle_resolve(args, resolver: DependencyResolver) -> int:
    """Handle the 'resolve' subcommand."""
    coords = requested_coordinates(resolver, args)
    if not coords:
        print("Error: no coordinates given", file=sys.stderr)
        return 1

    if args.output_format == 'purl':
        roots = resolver.collect(coords, args.type)
        text = OutputFormatter.format_as_purls(roots)
    elif args.output_format == 'roots':
        text = OutputFormatter.format_roots(resolver.resolve_roots(coords, args.type))
    elif args.output_format == 'classpath':
        text = OutputFormatter.format_as_classpath(resolver.resolve_dependencies(coords, args.type))
    else:
        text = OutputFormatter.format_as_paths(resolver.resolve_dependencies(coords, args.type))

    write_output(text, args.output)
    return 0


def handle_latest(args, resolver: DependencyResolver) -> int:
    """Handle the 'latest' subcommand."""
    if not args.coords:
        print("Error: no coordinates given", file=sys.stderr)
        return 1
    lines = [f"{coords}: {resolver.latest_version(coords, args.type)}" for coords in args.coords]
    write_output('\n'.join(lines) + '\n', args.output)
    return 0


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('coords', nargs='*', help='Coordinates: group:artifact[:version][:classifier](excl,...)')
    parser.add_argument('-r', '--repository', dest='repositories', action='append', default=[],
                        help='Repository token: id or id(url). Repeatable. Default: central')
    parser.add_argument('--local', help='Local repository directory')
    parser.add_argument('--offline', action='store_true', help='Only use cached artifacts and file: repositories')
    parser.add_argument('--reset', action='store_true', help='Re-check remote repositories for newer versions')
    parser.add_argument('--allow-snapshots', action='store_true', help='Consider snapshot versions')
    parser.add_argument('--type', default='jar', help='Artifact type. Default: jar')
    parser.add_argument('-D', dest='define', action='append', type=parse_define, metavar='KEY=VALUE',
                        help='Set a property (e.g. http.proxyHost=proxy.example.com)')
    parser.add_argument('-o', '--output', default='-', help='Output file (default: stdout)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--loglevel', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Set log level')


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='mvnresolve',
        description='Resolve Maven coordinates and their transitive dependencies to local files'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Subcommands')

    tree_parser = subparsers.add_parser('tree', help='Print the conflict-resolved dependency tree')
    add_common_arguments(tree_parser)
    tree_parser.add_argument('--pom', help='Project pom.xml whose dependencies are resolved')
    tree_parser.set_defaults(func=handle_tree)

    resolve_parser = subparsers.add_parser('resolve', help='Download dependencies and print their paths')
    add_common_arguments(resolve_parser)
    resolve_parser.add_argument('--pom', help='Project pom.xml whose dependencies are resolved')
    resolve_parser.add_argument('--format', dest='output_format', default='paths',
                                choices=['paths', 'classpath', 'purl', 'roots'],
                                help='Output format (paths, classpath, purl, roots). Default: paths')
    resolve_parser.set_defaults(func=handle_resolve)

    latest_parser = subparsers.add_parser('latest', help='Print the newest version matching each coordinate')
    add_common_arguments(latest_parser)
    latest_parser.set_defaults(func=handle_latest, pom=None)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.loglevel)

    try:
        with DependencyResolver(build_settings(args)) as resolver:
            return args.func(args, resolver)
    except ResolutionError as e:
        logger.debug("Resolution failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
