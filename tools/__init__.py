"""MCP tool registration for the Mixed Content Sequencer"""

from tools.batch import register_batch_tools
from tools.configuration import register_configuration_tools
from tools.producers import register_producer_tools
from tools.sequence import register_sequence_tools

__all__ = [
    "register_batch_tools",
    "register_configuration_tools",
    "register_producer_tools",
    "register_sequence_tools",
]
