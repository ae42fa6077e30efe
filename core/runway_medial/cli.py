"""Command line entry point: envelopes GeoJSON in, annotated GeoJSON out."""

from pathlib import Path
from typing import List, Optional, get_args
import argparse
import json
import logging
import sys

from .identity import assign_identity
from .pipeline import (
    PipelineConfig,
    configure_logging,
    default_log_path,
    load_pipeline_parameters,
    release_logging,
    run_pipeline,
)
from .reference import ReferenceTableError, load_reference_tables
from .schemas import FailureKind

logger = logging.getLogger(__name__)

FAILURE_KINDS = get_args(FailureKind)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runway-medial",
        description="Derive runway envelope medial lines, turn points and waypoints.",
    )
    parser.add_argument("envelopes", help="GeoJSON FeatureCollection of envelope rings")
    parser.add_argument("--airports", required=True, help="Airport CSV (OurAirports columns)")
    parser.add_argument("--runways", required=True, help="Runway threshold CSV")
    parser.add_argument("--output", required=True, help="Output GeoJSON path")
    parser.add_argument("--icao", nargs="*", default=[], help="Only process these airports")
    parser.add_argument("--country", default=None, help="Airport country filter, e.g. JP")
    parser.add_argument("--icao-prefix", default=None, help="Airport ICAO prefix filter, e.g. RJ")
    parser.add_argument("--overlay", default=None, help="Write a PNG overlay for visual QA")
    parser.add_argument("--params", default=None,
                        help="Parameter file (default: ENVELOPES_param.txt next to the input)")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    parser.add_argument("--log-file", default=None, help="Log file (default: next to the input)")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _load_config(args: argparse.Namespace) -> PipelineConfig:
    params = load_pipeline_parameters(args.envelopes, args.params)
    config = PipelineConfig().with_parameters(params)
    if args.workers is not None:
        config = config.model_copy(update={'workers': args.workers})
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s: %(name)s: %(message)s")
    log_file_path = Path(args.log_file) if args.log_file else default_log_path(args.envelopes)
    file_handler, original_level = configure_logging(log_file_path, getattr(logging, args.log_level))
    logger.info(f"Log file: {log_file_path}")

    try:
        try:
            tables = load_reference_tables(args.airports, args.runways,
                                           country=args.country, icao_prefix=args.icao_prefix)
        except ReferenceTableError as e:
            logger.error(f"Cannot load reference tables: {e}")
            return 2

        with open(args.envelopes, 'r', encoding='utf-8') as f:
            collection = json.load(f)
        envelopes = assign_identity(collection.get('features', []), tables)
        if args.icao:
            envelopes = [env for env in envelopes if env.icao in args.icao]
        logger.info(f"{len(envelopes)} envelopes to process")

        report = run_pipeline(envelopes, tables, _load_config(args))

        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(report.to_feature_collection(), f, indent=2)
        logger.info(f"Wrote {len(report.features)} features to {args.output}")

        if args.overlay:
            from .export_overlay import export_overlay_png
            export_overlay_png(report, envelopes, args.overlay)

        print(f"{report.succeeded}/{report.processed} envelopes succeeded")
        for kind in FAILURE_KINDS:
            count = len(report.failures_of_kind(kind))
            if count:
                print(f"  {kind}: {count}")
        for failure in report.failures:
            print(f"  [{failure.kind}] {failure.icao} RWY {failure.rwy} id: {failure.envelope_id}: {failure.message}")
        return 0
    finally:
        release_logging(file_handler, original_level)


if __name__ == "__main__":
    sys.exit(main())
