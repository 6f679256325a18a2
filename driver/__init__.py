"""Browser driver layer: retrying primitives over Playwright pages and frames."""

from .config import RunConfig, StageDelays, load_config
from .primitives import DriverPrimitives
from .retry import RetryEvent, RetryPolicy

__all__ = ["DriverPrimitives", "RetryEvent", "RetryPolicy", "RunConfig", "StageDelays", "load_config"]
