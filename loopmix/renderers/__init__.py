from loopmix.renderers.mixdown import MixdownEngine, MixingProgress, MixResult
from loopmix.renderers.render_graph import RenderPlan, TrackPlan, Voice, build_render_plan, render_plan

__all__ = [
    "MixdownEngine",
    "MixingProgress",
    "MixResult",
    "RenderPlan",
    "TrackPlan",
    "Voice",
    "build_render_plan",
    "render_plan",
]
