# Application Package
from .grading import attempt_to_grade, correctness_to_grade, score_to_grade
from .memory_model import advance, preview_intervals
from .optimizer import OptimizationResult, optimize, prediction_error
from .scheduling_service import SchedulingService

__all__ = [
    "OptimizationResult",
    "SchedulingService",
    "advance",
    "attempt_to_grade",
    "correctness_to_grade",
    "optimize",
    "prediction_error",
    "preview_intervals",
    "score_to_grade",
]
