"""
Partitioning Strategy Selection

Decides which levels are rendered by the flat strategy and which by the
pyramid strategy, and prepares the input rectangle the pyramid is built on.
Both choices only affect cost, never the tiles produced.
"""

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple, Union

import structlog

from ..utils.config import ConfigurationError, PyramidConfig, normalize_technique
from .flat_partition import FlatPartitioner
from .grid import GeoRectangle
from .plot_job import PlotJob
from .pyramid_partition import PyramidPartitioner
from .rasterizer import Rasterizer

logger = structlog.get_logger(component="strategy")


@dataclass(frozen=True)
class PartitionPlan:
    """One generation pass: a technique applied to a closed level range."""
    technique: str
    min_level: int
    max_level: int
    output_subdir: str

    @property
    def levels(self) -> str:
        return f"{self.min_level}..{self.max_level}"


def select_strategies(
    min_level: int,
    max_level: int,
    threshold: int,
    technique: Optional[str] = None
) -> List[PartitionPlan]:
    """
    Split a level range between the flat and pyramid strategies.

    Levels up to ``threshold`` are cheap enough to render flat; deeper levels
    go through the pyramid strategy. Each pass writes to its own
    sub-directory named after its technique.

    Args:
        min_level: Shallowest level (inclusive)
        max_level: Deepest level (inclusive)
        threshold: Deepest level rendered flat
        technique: ``flat`` or ``pyramid`` to force a single pass

    Returns:
        One or two plans, shallow levels first
    """
    if min_level < 0 or max_level < min_level:
        raise ConfigurationError(f"Invalid level range {min_level}..{max_level}")

    if technique is not None:
        technique = normalize_technique(technique)
        plans = [PartitionPlan(technique, min_level, max_level, technique)]
    else:
        plans = []
        if min_level <= threshold:
            plans.append(PartitionPlan(
                "flat", min_level, min(threshold, max_level), "flat"
            ))
        if max_level > threshold:
            plans.append(PartitionPlan(
                "pyramid", max(min_level, threshold + 1), max_level, "pyramid"
            ))

    for plan in plans:
        logger.info(
            f"Using {plan.technique} partitioning",
            levels=plan.levels,
            output_subdir=plan.output_subdir
        )
    return plans


def adjust_aspect_ratio(mbr: GeoRectangle) -> GeoRectangle:
    """
    Expand the shorter side of ``mbr`` so the rectangle becomes a square.

    The expansion is symmetric around the center of the shorter side; the
    input is never cropped.
    """
    if mbr.width > mbr.height:
        y1 = mbr.y1 - (mbr.width - mbr.height) / 2
        return GeoRectangle(mbr.x1, y1, mbr.x2, y1 + mbr.width)
    if mbr.height > mbr.width:
        x1 = mbr.x1 - (mbr.height - mbr.width) / 2
        return GeoRectangle(x1, mbr.y1, x1 + mbr.height, mbr.y2)
    return mbr


def prepare_input_mbr(mbr: GeoRectangle, keep_ratio: bool) -> GeoRectangle:
    """Apply the aspect-ratio policy and reject rectangles a grid cannot split."""
    if keep_ratio:
        mbr = adjust_aspect_ratio(mbr)
    if mbr.width <= 0 or mbr.height <= 0:
        raise ConfigurationError(
            f"Input MBR {mbr.to_tuple()} has zero area; pass an explicit rect"
        )
    return mbr


def job_for_plan(job: PlotJob, plan: PartitionPlan) -> PlotJob:
    return replace(job, min_level=plan.min_level, max_level=plan.max_level)


def make_partitioner(
    technique: str,
    job: PlotJob
) -> Union[FlatPartitioner, PyramidPartitioner]:
    if technique == "flat":
        return FlatPartitioner(job)
    if technique == "pyramid":
        return PyramidPartitioner(job)
    raise ConfigurationError(f"Unknown partitioning technique '{technique}'")


def plan_run(
    pyramid: PyramidConfig,
    data_mbr: Optional[GeoRectangle],
    rasterizer: Optional[Rasterizer] = None
) -> Tuple[PlotJob, List[PartitionPlan]]:
    """
    Resolve the input MBR and split the run into passes.

    Args:
        pyramid: Pyramid configuration section
        data_mbr: Discovered MBR of the input; ignored when ``pyramid.rect`` is set
        rasterizer: Drawing strategy, a GeometryRasterizer from config by default

    Returns:
        (job over the whole level range, plans)
    """
    pyramid.validate()
    if pyramid.rect is not None:
        rect = GeoRectangle(*pyramid.rect)
    elif data_mbr is not None:
        rect = data_mbr
    else:
        raise ConfigurationError("Input contains no shapes to plot")

    input_mbr = prepare_input_mbr(rect, pyramid.keep_ratio)
    job = PlotJob.from_config(pyramid, input_mbr, rasterizer)
    plans = select_strategies(
        job.min_level,
        job.max_level,
        pyramid.flat_partitioning_level_threshold,
        pyramid.partition
    )
    logger.info(
        "Pyramid planned",
        input_mbr=input_mbr.to_tuple(),
        levels=f"{job.min_level}..{job.max_level}",
        passes=[plan.technique for plan in plans]
    )
    return job, plans
