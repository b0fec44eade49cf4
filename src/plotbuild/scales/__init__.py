"""Scales: training, transformation, out-of-bounds handling and mapping."""

from plotbuild.scales.bounds import censor, expand_range, keep, pretty_breaks, rescale, squish
from plotbuild.scales.scale import (
    ContinuousScale,
    DiscreteScale,
    IdentityScale,
    Scale,
    scale_alpha_continuous,
    scale_alpha_discrete,
    scale_color_continuous,
    scale_color_discrete,
    scale_color_gradient,
    scale_color_identity,
    scale_color_manual,
    scale_discrete_manual,
    scale_fill_continuous,
    scale_fill_discrete,
    scale_fill_manual,
    scale_linetype,
    scale_linewidth_continuous,
    scale_shape,
    scale_size_continuous,
    scale_size_discrete,
    scale_x_continuous,
    scale_x_discrete,
    scale_x_log10,
    scale_x_reverse,
    scale_x_sqrt,
    scale_y_continuous,
    scale_y_discrete,
    scale_y_log10,
    scale_y_reverse,
    scale_y_sqrt,
)
from plotbuild.scales.scales_list import ScalesList, default_scale
from plotbuild.scales.transforms import Transform, get_transform

__all__ = [
    "ContinuousScale",
    "DiscreteScale",
    "IdentityScale",
    "Scale",
    "ScalesList",
    "Transform",
    "censor",
    "default_scale",
    "expand_range",
    "get_transform",
    "keep",
    "pretty_breaks",
    "rescale",
    "scale_alpha_continuous",
    "scale_alpha_discrete",
    "scale_color_continuous",
    "scale_color_discrete",
    "scale_color_gradient",
    "scale_color_identity",
    "scale_color_manual",
    "scale_discrete_manual",
    "scale_fill_continuous",
    "scale_fill_discrete",
    "scale_fill_manual",
    "scale_linetype",
    "scale_linewidth_continuous",
    "scale_shape",
    "scale_size_continuous",
    "scale_size_discrete",
    "scale_x_continuous",
    "scale_x_discrete",
    "scale_x_log10",
    "scale_x_reverse",
    "scale_x_sqrt",
    "scale_y_continuous",
    "scale_y_discrete",
    "scale_y_log10",
    "scale_y_reverse",
    "scale_y_sqrt",
    "squish",
]
