from .capture import EXECUTIONS_CATEGORY, ExecutionCapture
from .transcript import TranscriptParser, pair_tool_executions

__all__ = ["EXECUTIONS_CATEGORY", "ExecutionCapture", "TranscriptParser", "pair_tool_executions"]
