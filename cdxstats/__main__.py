"""
cdx-stats CLI entry point

Collects statistics for WARC files indexed by an OutbackCDX-style index
service, or recalculates a previously written statistics file.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from . import __version__
from .config import DEFAULT_END, DEFAULT_START, FilterConfig, MergeConfig, NormalizeOptions, StatsConfig
from .errors import CdxStatsError, ConfigError
from .flush import GroupFlushController
from .io.stats_writer import StagedOutput, StatsWriter
from .net.cdx_client import CdxClient
from .normalize import RecordNormalizer
from .policy import RecordPolicy
from .run import FetchDriver, discover_collections, replay_statistics

logger = logging.getLogger("cdxstats")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FILTER_WITHOUT_IN = 2
EXIT_IN_WITH_URL = 3
EXIT_IN_IS_OUT = 4
EXIT_FAILURE = 5

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

EPILOG = """\
If no infile is given, the raw CDX data is read from the index service and the
statistics are printed as delimited rows. If an infile is given, the
statistics within are recalculated according to the specified filters; the
infile is expected to be a previously generated statistics file.
Infiles ending in '.gz' or '.bz2' are decompressed while reading; outfiles
ending in '.gz' or '.bz2' are compressed once completely written.

The columns reported are 'collection', 'top-level-domain', 'sub-domain',
'month', 'content-type', 'extension', 'count', 'size' and
'human-readable-size'. Both sizes are the compressed size of the collected
data.
"""


class StatsArgumentParser(argparse.ArgumentParser):
    """Argument parser exiting with status 1 on malformed options."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = StatsArgumentParser(
        prog="cdx-stats",
        description="Collect statistics for WARC files indexed by OutbackCDX",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("collections", nargs="*", help="Collections to fetch (default: all in --outbackDir)")

    service = parser.add_argument_group("index service")
    service.add_argument("-O", "--outbackDir", dest="index_dir",
                         help="Directory for OutbackCDX indexes (default: '/data/outbackcdx')")
    service.add_argument("-H", "--host", "--outbackHost", dest="host",
                         help="Hostname for OutbackCDX (default: 'localhost')")
    service.add_argument("-P", "--port", "--outbackPort", dest="port", type=int,
                         help="Port for OutbackCDX (default: 8085)")
    service.add_argument("-u", "--url", default="",
                         help="Fetch a single domain ('kb.se'), resume from a domain ('kb.se.') "
                              "or fetch one URL for debugging")
    service.add_argument("--config", help="Optional configuration YAML")

    output = parser.add_argument_group("output")
    output.add_argument("-o", "--out", "--outfile", dest="out", help="Path to output file")
    output.add_argument("-9", "--tab", action="store_true", help="Use TAB instead of ', ' as output separator")
    output.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging output")

    filters = parser.add_argument_group("filters (require --in)")
    filters.add_argument("-i", "-f", "--in", "--infile", dest="infile",
                         help="Previously generated statistics file to recalculate ('-' for stdin)")
    filters.add_argument("-y", "--year", action="store_true", help="Use year instead of month")
    filters.add_argument("-m", "--maintype", action="store_true",
                         help="Use only the first part of the content-type")
    filters.add_argument("-a", "--ascii", action="store_true",
                         help="Use only an initial ascii part of malformed content-types")
    filters.add_argument("-r", "--rfc", action="store_true",
                         help="Allow only RFC-compliant content-types (but allowing empty sub-types)")
    filters.add_argument("-s", "--start", default=DEFAULT_START,
                         help="Only include data after timestamp (inclusive)")
    filters.add_argument("-e", "--end", default=DEFAULT_END,
                         help="Only include data before timestamp (inclusive)")
    filters.add_argument("-c", "--collections", dest="collection_patterns", action="append", default=[],
                         metavar="RE", help="Only display collections matching given regexp(s)")
    filters.add_argument("-d", "--domains", action="append", default=[], metavar="RE",
                         help="Only display top level domains matching given regexp(s)")
    filters.add_argument("-b", "--sub-domains", "--sub-domain", dest="sub_domains", action="append",
                         default=[], metavar="RE",
                         help="Only display 2nd level domains matching given regexp(s)")
    filters.add_argument("-t", "--types", action="append", default=[], metavar="RE",
                         help="Only display content-types matching given regexp(s)")
    filters.add_argument("-x", "--extensions", action="append", default=[], metavar="RE",
                         help="Only display file name extensions matching given regexp(s)")
    filters.add_argument("-C", "--total-collections", action="store_true", help="Merge data for all collections")
    filters.add_argument("-D", "--total-domains", action="store_true", help="Merge data for all top level domains")
    filters.add_argument("-B", "--total-sub-domains", action="store_true",
                         help="Merge data for all second level domains")
    filters.add_argument("-T", "--total-types", action="store_true", help="Merge data for all content-types")
    filters.add_argument("-X", "--total-extensions", action="store_true",
                         help="Merge data for all file name extensions")
    filters.add_argument("-M", "--total-months", action="store_true", help="Merge data for all months")
    filters.add_argument("-A", "--total", "--total-all", action="store_true",
                         help="Merge data for all key columns (alias for -CDBTXM)")
    return parser


def build_filters(args: argparse.Namespace) -> FilterConfig:
    return FilterConfig(
        collections=list(args.collection_patterns),
        domains=list(args.domains),
        sub_domains=list(args.sub_domains),
        types=list(args.types),
        extensions=list(args.extensions),
        start=args.start,
        end=args.end,
    )


def build_merges(args: argparse.Namespace) -> MergeConfig:
    if args.total:
        return MergeConfig.total()
    return MergeConfig(
        collections=args.total_collections,
        domains=args.total_domains,
        sub_domains=args.total_sub_domains,
        months=args.total_months,
        types=args.total_types,
        extensions=args.total_extensions,
    )


def build_options(args: argparse.Namespace) -> NormalizeOptions:
    return NormalizeOptions(year=args.year, main_type=args.maintype, ascii_only=args.ascii, rfc=args.rfc)


def check_conflicts(args: argparse.Namespace) -> Optional[Tuple[int, str]]:
    """Return (exit status, message) for mutually exclusive options."""
    options = build_options(args)
    uses_filters = (
        options != NormalizeOptions()
        or not build_filters(args).is_default()
        or not build_merges(args).is_default()
    )
    if not args.infile and uses_filters:
        return EXIT_FILTER_WITHOUT_IN, "all filter options require '--in'"
    if args.infile and args.url:
        return EXIT_IN_WITH_URL, "the '--in' and '--url' options are incompatible"
    if args.infile and args.out and args.infile == args.out and args.infile != "-":
        return EXIT_IN_IS_OUT, "the '--in' and '--out' options may not be identical"
    return None


def load_config(args: argparse.Namespace) -> StatsConfig:
    config = StatsConfig.from_yaml(args.config) if args.config else StatsConfig()
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.index_dir:
        overrides["index_dir"] = args.index_dir
    try:
        config.service = replace(config.service, **overrides)
    except ValueError as e:
        raise ConfigError(str(e)) from e
    if args.tab:
        config.output.separator = "\t"
    return config


def _attach_file_logging(log_path: Path, level: str) -> None:
    """Attach a file handler to root logger if not already present."""
    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve():
            return

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root.addHandler(file_handler)


def configure_logging(config: StatsConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logs.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, stream=sys.stderr)
    if config.logs.log_file:
        _attach_file_logging(Path(config.logs.log_file), config.logs.log_level)


def run_replay(args: argparse.Namespace, writer: StatsWriter) -> None:
    filters = build_filters(args)
    if not filters.collections:
        filters.collections = list(args.collections)
    policy = RecordPolicy(filters, build_merges(args))
    controller = GroupFlushController(writer.write_group, whole_store=True)
    stats = replay_statistics(args.infile, policy, RecordNormalizer(build_options(args)), controller)
    logger.info("Replay of '%s': %s", args.infile, stats)


def run_fetch(args: argparse.Namespace, config: StatsConfig, writer: StatsWriter) -> None:
    collections: List[str] = list(args.collections) or discover_collections(config.service.index_dir)
    if not collections:
        logger.warning("No collections to fetch")
    controller = GroupFlushController(writer.write_group)
    with CdxClient(config.service, config.limits) as client:
        driver = FetchDriver(config, client, controller, start_url=args.url)
        stats = driver.run(collections)
    logger.info("Fetch finished: %s", stats)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    conflict = check_conflicts(args)
    if conflict:
        status, message = conflict
        print(f"ERROR: {message}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return status

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_FAILURE

    configure_logging(config, args.verbose)

    output = StagedOutput(args.out)
    try:
        writer = StatsWriter(output.open(), config.output.separator)
        if args.infile:
            run_replay(args, writer)
        else:
            run_fetch(args, config, writer)
        final_path = output.commit()
    except CdxStatsError as e:
        logger.error("%s", e)
        return EXIT_FAILURE
    finally:
        output.close()

    if final_path:
        logger.info("Wrote %d rows to %s", writer.rows_written, final_path)
    logger.info("done.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
