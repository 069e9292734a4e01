"""frostty_bridge - Chat front end for a locally running Frostty agent.

Architecture:
- Frames and events turn the agent's NDJSON stream into a reply
- Liveness owns the agent process (start, wake, probe)
- Sessions bind the chat to one agent session per workspace
- The bridge controller dispatches chat commands against all of the above
"""

from .agent import AgentClient, AgentError, SessionDescriptor
from .bridge import BridgeController, Chat
from .config import BridgeConfig, ConfigError, load_config
from .events import COMPLETION_MARKER, StreamEvent, StreamInterpreter, TextEvent, ToolUseEvent, parse_record
from .frames import LineDecoder, iter_records
from .liveness import LivenessManager, LivenessState
from .observability import configure as configure_observability
from .sessions import SessionNotFound, SessionRouter
from .state import BridgeState

__all__ = [
    # Controller
    "BridgeController",
    "BridgeState",
    "Chat",
    # Stream protocol
    "LineDecoder",
    "iter_records",
    "StreamEvent",
    "ToolUseEvent",
    "TextEvent",
    "parse_record",
    "StreamInterpreter",
    "COMPLETION_MARKER",
    # Agent
    "AgentClient",
    "AgentError",
    "SessionDescriptor",
    "LivenessManager",
    "LivenessState",
    "SessionRouter",
    "SessionNotFound",
    # Configuration
    "BridgeConfig",
    "ConfigError",
    "load_config",
    # Observability
    "configure_observability",
]
__version__ = "0.1.0"
