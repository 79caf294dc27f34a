"""Class placement: partition a grade's students into teacher-bound classes."""

from .errors import Cancelled, DegenerateSearch, InvalidInput, PlacementError
from .model import (
	Assignment,
	ClassGroup,
	ParentPreference,
	PeerPreference,
	PlacementConstraint,
	SpecialConsideration,
	Student,
	StudentPair,
	Teacher,
	TeacherSurvey,
	assignment_from_classes,
	build_initial_assignment,
	validate_assignment,
	validate_constraints,
)
from .neighbors import neighbor
from .problem import (
	ClassProblem,
	load_class_problem_from_json,
	problem_from_dict,
	solve_class_placement,
)
from .reporting import (
	FactorScore,
	assignment_frame,
	details,
	details_frame,
	format_assignment_as_rows,
	format_details_as_rows,
	format_violations_as_rows,
)
from .scoring import FACTORS, constraint_violations, factor_scores, score, validate_weights
from .search import (
	OptimizationHandle,
	OptimizationResult,
	SearchOptions,
	optimize,
	submit_optimization,
)

__all__ = [
	"Cancelled",
	"DegenerateSearch",
	"InvalidInput",
	"PlacementError",
	"Assignment",
	"ClassGroup",
	"ParentPreference",
	"PeerPreference",
	"PlacementConstraint",
	"SpecialConsideration",
	"Student",
	"StudentPair",
	"Teacher",
	"TeacherSurvey",
	"assignment_from_classes",
	"build_initial_assignment",
	"validate_assignment",
	"validate_constraints",
	"neighbor",
	"ClassProblem",
	"load_class_problem_from_json",
	"problem_from_dict",
	"solve_class_placement",
	"FactorScore",
	"assignment_frame",
	"details",
	"details_frame",
	"format_assignment_as_rows",
	"format_details_as_rows",
	"format_violations_as_rows",
	"FACTORS",
	"constraint_violations",
	"factor_scores",
	"score",
	"validate_weights",
	"OptimizationHandle",
	"OptimizationResult",
	"SearchOptions",
	"optimize",
	"submit_optimization",
]
