from models.base import Base
from models.block_action_log import BlockActionLog
from models.block_group import BlockGroup
from models.block_section import BlockSection
from models.student import Student
from models.student_block_assignment import StudentBlockAssignment

__all__ = [
	"Base",
	"BlockActionLog",
	"BlockGroup",
	"BlockSection",
	"Student",
	"StudentBlockAssignment",
]
