from .analytic import Analytic
from .period import Period
from .view import View

__all__ = [
    "Analytic",
    "Period",
    "View",
]
