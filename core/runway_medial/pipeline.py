"""Batch pipeline: envelopes in, medial lines and markers out."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
import ast
import logging
import time

from .annotate import anchor_turn_points, curvature_turn_points, distance_turn_points
from .dedup import DEFAULT_SIMILARITY_THRESHOLD, deduplicate_envelopes
from .envelope import Envelope
from .geometry import Coord
from .reference import ReferenceTables
from .runway import extend_to_threshold, runway_end_features
from .schemas import BatchReport, EnvelopeFailure, FailureKind, OutputFeature
from .skeleton_graph import (
    BOUNDARY_TOLERANCE,
    DEFAULT_SCALE,
    DecompositionError,
    MalformedEnvelopeError,
    extract_medial_line,
)
from .takeoff import STRAIGHT_TOLERANCE_DEG, classify_envelope, takeoff_anchor_features

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

MEDIAL_LINE_STYLE = {'stroke': '#FF0000', 'stroke-width': 3}
SKELETON_STYLE = {'stroke': '#AAAAAA', 'stroke-width': 1}
INTERNAL_EDGE_STYLE = {'stroke': '#0000FF', 'stroke-width': 1}


class PipelineConfig(BaseModel):
    """Tunable parameters of a run."""
    similarity_threshold: float = Field(DEFAULT_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    straight_tolerance_deg: float = Field(STRAIGHT_TOLERANCE_DEG, ge=0.0, le=90.0)
    skeleton_scale: float = Field(DEFAULT_SCALE, gt=0)
    boundary_tolerance: float = Field(BOUNDARY_TOLERANCE, gt=0)
    workers: int = Field(4, ge=1)
    extend_to_runway: bool = True
    emit_debug_geometry: bool = True
    curvature_markers: bool = False

    def with_parameters(self, params: Dict[str, Any]) -> "PipelineConfig":
        """Copy of this config with known parameters overridden; unknown names are logged."""
        known = {k: v for k, v in params.items() if k in type(self).model_fields}
        for name in params:
            if name not in known:
                logger.warning(f"Ignoring unknown pipeline parameter: {name}")
        for name, value in known.items():
            logger.info(f"Using {name} from param file: {value}")
        return type(self).model_validate({**self.model_dump(), **known})


def load_pipeline_parameters(input_path: str, param_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load pipeline parameters from FILENAME_param.txt next to the input file.

    Each non-empty, non-comment line is "name = value"; values are Python
    literals (numbers, booleans, strings).

    Args:
        input_path: Path to the envelope input file
        param_file: Explicit parameter file, overrides the FILENAME_param.txt lookup

    Returns:
        Dictionary of parameter name -> value. Only includes parameters that were found in the file.
    """
    params = {}
    source = Path(input_path)
    if param_file:
        param_file_path = Path(param_file)
    else:
        param_file_path = source.parent / f"{source.stem}_param.txt"

    if not param_file_path.exists():
        logger.debug(f"Parameter file not found: {param_file_path}")
        return params

    logger.info(f"Loading parameters from: {param_file_path}")
    try:
        with open(param_file_path, 'r') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith('#'):
                    continue
                if '=' not in line:
                    logger.warning(f"  Ignoring line {line_num} without '=': {line}")
                    continue

                name, value_str = (part.strip() for part in line.split('=', 1))
                try:
                    value = ast.literal_eval(value_str)
                except (ValueError, SyntaxError) as e:
                    logger.warning(f"  Failed to parse parameter on line {line_num}: {line} ({e})")
                    continue
                params[name] = value
                logger.debug(f"  Loaded {name} = {value}")
    except OSError as e:
        logger.warning(f"Failed to load parameter file {param_file_path}: {e}")

    return params


def default_log_path(input_path: str) -> Path:
    """INPUTNAME_YYYYmmdd_HHMMSS.log in the input file's directory."""
    source = Path(input_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return source.parent / f"{source.stem}_{timestamp}.log"


def configure_logging(log_file_path, level: int = logging.INFO) -> Tuple[logging.FileHandler, int]:
    """
    Attach a file handler to the root logger and set its level.

    Returns the handler and the root logger's original level so the caller
    can undo both with release_logging().
    """
    file_handler = logging.FileHandler(log_file_path, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger()
    # Store original level to restore later
    original_level = root_logger.level if root_logger.level else logging.WARNING
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    return file_handler, original_level


def release_logging(file_handler: logging.FileHandler, original_level: int = logging.WARNING) -> None:
    root_logger = logging.getLogger()
    root_logger.removeHandler(file_handler)
    root_logger.setLevel(original_level)
    file_handler.close()


@dataclass
class EnvelopeResult:
    envelope: Envelope
    features: List[OutputFeature] = field(default_factory=list)
    failures: List[EnvelopeFailure] = field(default_factory=list)
    medial_line: Optional[List[Coord]] = None

    def fail(self, kind: FailureKind, message: str) -> None:
        self.failures.append(_failure(self.envelope, kind, message))

    @property
    def succeeded(self) -> bool:
        # a missing runway record only skips the threshold extension
        return self.medial_line is not None and all(f.kind == 'reference_miss' for f in self.failures)


def _failure(envelope: Envelope, kind: FailureKind, message: str) -> EnvelopeFailure:
    return EnvelopeFailure(
        envelope_id=envelope.envelope_id,
        icao=envelope.icao,
        rwy=envelope.rwy,
        kind=kind,
        message=message,
    )


def process_envelope(
    envelope: Envelope,
    tables: ReferenceTables,
    config: Optional[PipelineConfig] = None
) -> EnvelopeResult:
    """
    Derive the medial line and markers of one envelope.

    Straight envelopes get the direct line between the take-off anchors;
    curved ones are decomposed with the straight skeleton. The line is then
    extended to the runway threshold and annotated.

    Args:
        envelope: Envelope to process (its straight flag is set here)
        tables: Shared reference tables
        config: Pipeline configuration

    Returns:
        EnvelopeResult with output features and per-envelope failures
    """
    config = config or PipelineConfig()
    result = EnvelopeResult(envelope=envelope)

    edge = classify_envelope(envelope, config.straight_tolerance_deg)
    if edge is None:
        result.fail('malformed_input', f"Ring has {len(envelope.ring)} coordinates, need at least 4")
        return result
    result.features.append(envelope.to_feature())
    result.features.extend(takeoff_anchor_features(envelope, edge))
    take_off_start, take_off_end = edge.anchors()

    base = {'icao': envelope.icao, 'rwy': envelope.rwy, 'envelopeId': envelope.envelope_id}
    complete = True
    if envelope.straight:
        logger.info(f"{envelope.label} - straight")
        coords = [take_off_start, take_off_end]
    else:
        logger.info(f"{envelope.label} - curved")
        try:
            medial = extract_medial_line(
                envelope.ring, take_off_start, take_off_end,
                scale=config.skeleton_scale,
                boundary_tolerance=config.boundary_tolerance,
            )
        except MalformedEnvelopeError as e:
            result.fail('malformed_input', str(e))
            return result
        except DecompositionError as e:
            result.fail('decomposition_failure', str(e))
            return result

        coords = medial.coords
        complete = medial.complete
        if not medial.walked:
            result.fail('walk_incomplete', f"{medial.problem}; partial line has {len(coords)} positions")
        elif not complete:
            result.fail('decomposition_failure', medial.problem)
        if config.emit_debug_geometry:
            result.features.append(OutputFeature.multi_line(
                medial.central_skeleton, {**base, 'type': 'centralSkeleton', **SKELETON_STYLE}))
            result.features.append(OutputFeature.multi_line(
                medial.central_multiline, {**base, 'type': 'centralMultiLine', **INTERNAL_EDGE_STYLE}))
        result.features.extend(anchor_turn_points(envelope, coords))
        if config.curvature_markers:
            result.features.extend(curvature_turn_points(envelope, coords))

    if config.extend_to_runway:
        if tables.runways_for(envelope.icao):
            coords = extend_to_threshold(coords, envelope.icao, tables)
        else:
            result.fail('reference_miss', f"No runway records for {envelope.icao}")

    result.medial_line = coords
    result.features.append(OutputFeature.line(coords, {
        **base,
        'type': 'medialLine',
        'straight': envelope.straight,
        'complete': complete,
        **MEDIAL_LINE_STYLE,
    }))
    result.features.extend(distance_turn_points(envelope, coords, tables))
    return result


def _run_isolated(envelope: Envelope, tables: ReferenceTables, config: PipelineConfig) -> EnvelopeResult:
    try:
        return process_envelope(envelope, tables, config)
    except Exception as e:
        logger.error(f"{envelope.label}: processing failed: {e}", exc_info=True)
        result = EnvelopeResult(envelope=envelope)
        result.fail('decomposition_failure', f"{type(e).__name__}: {e}")
        return result


def run_pipeline(
    envelopes: Sequence[Envelope],
    tables: ReferenceTables,
    config: Optional[PipelineConfig] = None
) -> BatchReport:
    """
    Run the full batch: deduplicate, then process every envelope independently.

    Envelopes are processed on a thread pool; results are joined in input
    order. A failing envelope is reported in the batch report and never stops
    the others.

    Args:
        envelopes: Envelopes with identity assigned
        tables: Reference tables, loaded once and shared read-only
        config: Pipeline configuration

    Returns:
        BatchReport with all features and failures
    """
    config = config or PipelineConfig()
    pipeline_start_time = time.time()
    logger.info("=" * 70)
    logger.info(f"Pipeline started for {len(envelopes)} envelopes")
    logger.info("=" * 70)

    logger.info("Step 1: Removing duplicate envelopes...")
    step_start = time.time()
    unique = deduplicate_envelopes(list(envelopes), config.similarity_threshold)
    dedup_time = time.time() - step_start
    logger.info(f"Step 1: Completed in {dedup_time:.2f}s")

    logger.info(f"Step 2: Processing {len(unique)} envelopes with {config.workers} workers...")
    step_start = time.time()
    with ThreadPoolExecutor(max_workers=config.workers) as executor:
        futures = [executor.submit(_run_isolated, env, tables, config) for env in unique]
        results = [future.result() for future in futures]
    process_time = time.time() - step_start
    logger.info(f"Step 2: Completed in {process_time:.2f}s")

    report = BatchReport(processed=len(results))
    icaos: List[str] = []
    for result in results:
        report.features.extend(result.features)
        report.failures.extend(result.failures)
        if result.succeeded:
            report.succeeded += 1
        if result.envelope.icao and result.envelope.icao not in icaos:
            icaos.append(result.envelope.icao)
    for icao in icaos:
        report.features.extend(runway_end_features(icao, tables))

    pipeline_total_time = time.time() - pipeline_start_time
    logger.info("=" * 70)
    logger.info("Pipeline Timing Summary")
    logger.info("=" * 70)
    logger.info(f"Step 1 (Deduplication): {dedup_time:.2f}s")
    logger.info(f"Step 2 (Medial Lines): {process_time:.2f}s")
    logger.info(f"Total pipeline time: {pipeline_total_time:.2f}s")
    logger.info(f"Envelopes: {report.processed} processed, {report.succeeded} succeeded, "
                f"{len(report.failures)} failures reported")
    logger.info("=" * 70)
    return report
