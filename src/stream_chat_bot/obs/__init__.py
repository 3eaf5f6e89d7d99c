from .renderer_client import ConnectionState, RendererClient, classify_connection_error
from .sources import ObsSources, sanitize_for_obs
from .effects import ObsEffects
from .goal_display import GoalDisplay
from .display_queue import DisplayItem, DisplayQueue
from .handcam_glow import HandcamGlow
from .viewer_count import ViewerCountObserver, format_viewer_count

__all__ = [
    "ConnectionState",
    "RendererClient",
    "classify_connection_error",
    "ObsSources",
    "sanitize_for_obs",
    "ObsEffects",
    "GoalDisplay",
    "DisplayItem",
    "DisplayQueue",
    "HandcamGlow",
    "ViewerCountObserver",
    "format_viewer_count",
]
