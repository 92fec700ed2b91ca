"""Widget exports for the astreus_cli UI."""

from .activity_bar import ActivityBar
from .conversation import ConversationView
from .input_box import InputBox
from .message import MessageBubble
from .status_bar import StatusBar
from .tool_calls import ToolCallsView

__all__ = [
    "ActivityBar",
    "ConversationView",
    "InputBox",
    "MessageBubble",
    "StatusBar",
    "ToolCallsView",
]
