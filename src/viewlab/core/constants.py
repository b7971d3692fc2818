"""Shared constants."""

INTRINSIC_VIEW = "intraview"
PARAVIEW_PREFIX = "paraview"
JUXTAVIEW_PREFIX = "juxtaview"

DEFAULT_FOLDS = 10
DEFAULT_SEED = 42
DEFAULT_TREES = 100

# Kernel weights below this are treated as "not a neighbor".
DEFAULT_CUTOFF = 0.01

PERFORMANCE_MEASURES = ("R2", "RMSE")

CACHE_ENV_VAR = "VIEWLAB_CACHE_DIR"
DEFAULT_CACHE_DIR = ".viewlab_cache"
