from tools.catalog import TOOL_DECLARATIONS, USER_SCOPED, ToolName
from tools.dispatcher import ToolDispatcher

__all__ = ["TOOL_DECLARATIONS", "USER_SCOPED", "ToolName", "ToolDispatcher"]
