"""Services module - Business logic layer"""

from .command_guard import InteractiveCommandGuard
from .config_manager import ConfigManager
from .diff_generator import DiffGenerator
from .dispatcher import EditDispatcher
from .llm_service import LLMService, LLMServiceError
from .patch_resolver import PatchResolver
from .repair_loop import RepairLoopController, RunResult
from .session import SessionRegistry, WorkspaceSession, build_local_session
from .stream_parser import BlockStreamParser, parse_response

__all__ = [
    "InteractiveCommandGuard",
    "ConfigManager",
    "DiffGenerator",
    "EditDispatcher",
    "LLMService",
    "LLMServiceError",
    "PatchResolver",
    "RepairLoopController",
    "RunResult",
    "SessionRegistry",
    "WorkspaceSession",
    "build_local_session",
    "BlockStreamParser",
    "parse_response",
]
