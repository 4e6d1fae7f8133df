from .exceptions import (SpecValidationError, PlanningError, UnknownDependencyError,
                         CyclicDependencyError)
from .software import SourceSpec, SoftwareSpec, ProjectSpec, Registry, SOURCE_KINDS
from .loader import load_registry
from .planner import TaskPlanner, plan
