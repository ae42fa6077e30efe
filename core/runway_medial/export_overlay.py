"""Export a PNG overlay of envelopes, skeletons, medial lines and markers."""

from typing import Iterable, List, Optional, Sequence, Tuple
from PIL import Image, ImageColor, ImageDraw, ImageFont
import math
import logging

from .envelope import Envelope
from .geometry import bounds_of
from .schemas import BatchReport, OutputFeature

logger = logging.getLogger(__name__)

# features drawn first end up underneath
_DRAW_ORDER = {
    'centralSkeleton': 0,
    'centralMultiLine': 1,
    'medialLine': 2,
}


def _feature_coords(feature: OutputFeature) -> List[Sequence[float]]:
    geometry = feature.geometry
    geom_type = geometry.get('type')
    if geom_type == 'Point':
        return [geometry['coordinates']]
    if geom_type == 'LineString':
        return list(geometry['coordinates'])
    if geom_type == 'MultiLineString':
        return [c for line in geometry['coordinates'] for c in line]
    if geom_type == 'Polygon':
        return list(geometry['coordinates'][0])
    return []


def compute_bounds(
    envelopes: Iterable[Envelope],
    features: Iterable[OutputFeature],
    padding_fraction: float = 0.05
) -> Tuple[float, float, float, float]:
    """
    Bounding box (xmin, ymin, xmax, ymax) of all geometry, padded on every side.

    Returns a unit box around the origin when there is nothing to draw.
    """
    coord_lists = [env.ring for env in envelopes] + [_feature_coords(f) for f in features]
    xmin, ymin, xmax, ymax = bounds_of(coord_lists)
    if xmin == xmax and ymin == ymax:
        return (xmin - 0.5, ymin - 0.5, xmax + 0.5, ymax + 0.5)
    pad = max(xmax - xmin, ymax - ymin) * padding_fraction
    return (xmin - pad, ymin - pad, xmax + pad, ymax + pad)


class _Projector:
    """Longitude/latitude to pixels; north up, longitude shrunk by cos(latitude)."""

    def __init__(self, bounds: Tuple[float, float, float, float], image_width: int):
        self.xmin, self.ymin, self.xmax, self.ymax = bounds
        self.x_scale = math.cos(math.radians((self.ymin + self.ymax) / 2))
        width = (self.xmax - self.xmin) * self.x_scale
        height = self.ymax - self.ymin
        self.deg_per_px = max(width, height / 10.0) / image_width
        self.width = image_width
        self.height = max(1, int(height / self.deg_per_px))

    def __call__(self, coord: Sequence[float]) -> Tuple[int, int]:
        px = int((coord[0] - self.xmin) * self.x_scale / self.deg_per_px)
        py = int((self.ymax - coord[1]) / self.deg_per_px)
        return (px, py)


def _color(value: Optional[str], default: Tuple[int, int, int]) -> Tuple[int, int, int]:
    if not value:
        return default
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        logger.debug("Unknown colour %r, using default", value)
        return default


def _load_font(font_size: int):
    try:
        return ImageFont.truetype("DejaVuSans.ttf", font_size)
    except OSError:
        return ImageFont.load_default()


def export_overlay_png(
    report: BatchReport,
    envelopes: Sequence[Envelope],
    output_path: str = "overlay.png",
    image_width: int = 2000,
    background_color: Tuple[int, int, int] = (255, 255, 255),
    envelope_fill_color: Tuple[int, int, int] = (240, 240, 255),
    envelope_outline_color: Tuple[int, int, int] = (120, 120, 140),
    label_color: Tuple[int, int, int] = (0, 0, 0),
    font_size: int = 12
) -> None:
    """
    Export an overlay image of a batch result as PNG for visual QA.

    Line colours come from each feature's 'stroke' property and marker colours
    from 'marker-color'; envelopes are drawn as faint filled polygons and
    labelled with their identity.

    Args:
        report: Batch report with output features
        envelopes: Envelopes to draw underneath
        output_path: Output file path
        image_width: Image width in pixels (height follows the aspect ratio)
        background_color: Background RGB color
        envelope_fill_color: Envelope fill RGB color (faint)
        envelope_outline_color: Envelope outline RGB color
        label_color: Label text RGB color
        font_size: Font size for labels
    """
    logger.info("Exporting overlay PNG to: %s", output_path)
    features = [f for f in report.features if f.kind != 'envelope']
    project = _Projector(compute_bounds(envelopes, features), image_width)
    logger.debug("Image size: %d x %d pixels, %.8f deg/px", project.width, project.height, project.deg_per_px)

    img = Image.new('RGB', (project.width, project.height), background_color)
    draw = ImageDraw.Draw(img)
    font = _load_font(font_size)

    for envelope in envelopes:
        if len(envelope.ring) < 3:
            continue
        draw.polygon([project(c) for c in envelope.ring], fill=envelope_fill_color, outline=envelope_outline_color)

    lines = [f for f in features if f.geometry.get('type') in ('LineString', 'MultiLineString')]
    lines.sort(key=lambda f: _DRAW_ORDER.get(f.kind, len(_DRAW_ORDER)))
    for feature in lines:
        color = _color(feature.properties.get('stroke'), (0, 100, 200))
        width = int(feature.properties.get('stroke-width', 2))
        if feature.geometry['type'] == 'LineString':
            parts = [feature.geometry['coordinates']]
        else:
            parts = feature.geometry['coordinates']
        for part in parts:
            if len(part) >= 2:
                draw.line([project(c) for c in part], fill=color, width=width)

    radius_by_size = {'small': 3, 'medium': 5, 'large': 7}
    for feature in features:
        if feature.geometry.get('type') != 'Point':
            continue
        x, y = project(feature.geometry['coordinates'])
        r = radius_by_size.get(feature.properties.get('marker-size'), 4)
        color = _color(feature.properties.get('marker-color'), (255, 0, 0))
        draw.ellipse([x - r, y - r, x + r, y + r], fill=color, outline=(0, 0, 0))

    text_bboxes: List[Tuple[int, int, int, int]] = []
    for envelope in envelopes:
        if not envelope.ring:
            continue
        label = f"{envelope.icao} {envelope.rwy}".strip() or envelope.envelope_id
        x, y = project(envelope.ring[0])
        text_width = int(len(label) * font_size * 0.6)
        text_x, text_y, bbox = _place_label(x + 4, y - font_size // 2, text_width, font_size,
                                            text_bboxes, project.width, project.height)
        text_bboxes.append(bbox)
        draw.text((text_x, text_y), label, fill=label_color, font=font)

    img.save(output_path, 'PNG')
    logger.info("Overlay PNG saved: %s (%d x %d pixels)", output_path, project.width, project.height)


def _place_label(
    text_x: int, text_y: int, text_width: int, text_height: int,
    existing: List[Tuple[int, int, int, int]],
    image_width: int, image_height: int,
    padding: int = 3
):
    """Move a label to a free spot next to its anchor if it overlaps an earlier one."""
    def overlaps(bbox) -> bool:
        x1_min, y1_min, x1_max, y1_max = bbox
        for x2_min, y2_min, x2_max, y2_max in existing:
            if not (x1_max + padding < x2_min or x2_max + padding < x1_min or
                    y1_max + padding < y2_min or y2_max + padding < y1_min):
                return True
        return False

    bbox = (text_x, text_y, text_x + text_width, text_y + text_height)
    if not overlaps(bbox):
        return text_x, text_y, bbox

    offsets = [
        (0, -text_height - padding),  # above
        (text_width + padding, 0),    # right
        (0, text_height + padding),   # below
        (-text_width - padding, 0),   # left
    ]
    for dx, dy in offsets:
        new_x = max(0, min(text_x + dx, image_width - text_width))
        new_y = max(0, min(text_y + dy, image_height - text_height))
        candidate = (new_x, new_y, new_x + text_width, new_y + text_height)
        if not overlaps(candidate):
            return new_x, new_y, candidate
    return text_x, text_y, bbox
