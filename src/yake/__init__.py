__version__ = "0.4.0"

from .errors import (
    ConfigError,
    CycleDetected,
    ExecutionError,
    ResolutionError,
    TemplateError,
    YakeError,
)
from .model import RootMeta, Target, TargetType, Tree
from .loader import build_tree, load_string, load_yakefile
from .env import effective_env
from .template import render
from .dag import build_order
from .runner import Executor, RunResult, run_target

__all__ = [
    "ConfigError", "CycleDetected", "ExecutionError", "ResolutionError", "TemplateError", "YakeError",
    "RootMeta", "Target", "TargetType", "Tree",
    "build_tree", "load_string", "load_yakefile",
    "effective_env", "render", "build_order",
    "Executor", "RunResult", "run_target",
]
