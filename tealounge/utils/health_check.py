"""
Health check utilities for the application.
"""

from typing import Any, Dict

from ..services.memory_bank import MemoryBank
from .bedrock_llm import BedrockLLM
from .config import config
from .logging_config import get_logger

logger = get_logger(__name__)


def get_health_status(llm: BedrockLLM, memory_bank: MemoryBank) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    # Check Bedrock LLM
    try:
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': config.bedrock_llm.model_id
        }
    except Exception as e:
        logger.error(f'Bedrock LLM health check failed: {e}')
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # The memory bank is in-process, so reporting stats is the check
    try:
        health_status['memory_bank'] = {
            'healthy': True,
            'service': 'In-process memory bank',
            'stats': memory_bank.get_memory_stats().to_dict()
        }
    except Exception as e:
        logger.error(f'Memory bank health check failed: {e}')
        health_status['memory_bank'] = {'healthy': False, 'service': 'In-process memory bank', 'error': str(e)}

    if not all(status['healthy'] for status in health_status.values()):
        logger.warning('Some system components are unhealthy')

    return health_status
