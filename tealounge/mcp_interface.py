"""
MCP Interface Layer using fastmcp for the chat lounge.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from tealounge.services.chat_orchestrator import ChatOrchestrator, ChatRequestError
from tealounge.services.maintenance import MaintenanceWorker
from tealounge.utils.config import config
from tealounge.utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Tea Lounge')
orchestrator = ChatOrchestrator()


@mcp.tool()
def chat(conversation_history: List[Dict[str, Any]], session_id: Optional[str] = None) -> Dict[str, Any]:
    """Send the conversation so far and get the companion's reply.

    Args:
        conversation_history: Messages with 'text', 'sender' ('user' or 'agent'),
            and optional 'id' and 'timestamp'; oldest first
        session_id: Session to continue; a new one is started when omitted

    Returns:
        Reply text, session id, detected emotion, learned facts and clarification questions

    Raises:
        Exception: If the request payload is malformed
    """
    try:
        result = orchestrator.handle_turn(conversation_history, session_id)
    except ChatRequestError as e:
        logger.warning(f'Rejected chat request: {e}')
        raise Exception(f'Invalid chat request: {e}')

    logger.debug(f'MCP chat replied in session {result.session_id}')
    return result.to_dict()


@mcp.tool()
def get_knowledge() -> Dict[str, Any]:
    """Summarise what the companion has learned: stats, recent facts and categories."""
    return orchestrator.get_knowledge()


@mcp.tool()
def resolve_conflict(conflict_id: str, choice: str) -> Dict[str, Any]:
    """Answer a clarification question from an earlier chat reply.

    Args:
        conflict_id: The conflict_id from a chat result's clarifications
        choice: 'new' to keep the new fact, 'existing' to keep the old one, 'merge' to combine them

    Returns:
        {'success': bool, ...}; unknown ids and invalid choices report success False
    """
    if not conflict_id or not conflict_id.strip():
        return {'success': False, 'message': 'Conflict ID is required'}
    return orchestrator.resolve_conflict(conflict_id.strip(), choice.strip().lower())


@mcp.tool()
def health() -> Dict[str, Any]:
    """Report hosted-model reachability and memory stats."""
    return orchestrator.health()


def main() -> None:
    orchestrator.load_knowledge()
    worker = MaintenanceWorker(orchestrator)
    worker.start()
    try:
        if config.mcp.transport == 'stdio':
            mcp.run(transport='stdio')
        else:
            mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
    finally:
        worker.stop()
        orchestrator.save_knowledge()


if __name__ == '__main__':
    main()
