from registrar.directory import BlockDirectory
from registrar.engine import AssignmentEngine, BatchOutcome
from registrar.finder import AssignableStudentFinder, Selection
from registrar.resolution import OvercapacityResolution, ResolutionState
from registrar.session import BlockAssignmentSession
from registrar.transport import BlockApi

__all__ = [
	"AssignableStudentFinder",
	"AssignmentEngine",
	"BatchOutcome",
	"BlockApi",
	"BlockAssignmentSession",
	"BlockDirectory",
	"OvercapacityResolution",
	"ResolutionState",
	"Selection",
]
