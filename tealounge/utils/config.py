"""
Configuration management for the hosted model and the conversation pipeline.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class CompanionConfig:
    """Names used in prompts and in the relationship heuristics."""
    assistant_name: str
    user_name: str
    partner_name: str  # The named third party the emotion detector watches for


@dataclass
class SessionConfig:
    """Configuration for conversation sessions."""
    timeout_minutes: int
    sweep_interval_minutes: int


@dataclass
class MemoryConfig:
    """Configuration for the memory bank and its snapshot file."""
    knowledge_path: str
    save_probability: float
    cleanup_interval_hours: float
    cleanup_min_confidence: float
    cleanup_max_age_days: int
    contextual_fact_limit: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    companion: CompanionConfig
    session: SessionConfig
    memory: MemoryConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-haiku-20240307-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '1024')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.7')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    companion_config = CompanionConfig(assistant_name=os.getenv('COMPANION_ASSISTANT_NAME', 'Gigi'),
                                       user_name=os.getenv('COMPANION_USER_NAME', 'Kittu'),
                                       partner_name=os.getenv('COMPANION_PARTNER_NAME', 'Sam'))

    session_config = SessionConfig(timeout_minutes=int(os.getenv('SESSION_TIMEOUT_MINUTES', '30')),
                                   sweep_interval_minutes=int(os.getenv('SESSION_SWEEP_INTERVAL_MINUTES', '15')))

    # Memory configuration
    memory_config = MemoryConfig(knowledge_path=os.getenv('MEMORY_KNOWLEDGE_PATH', 'knowledge_base.json'),
                                 save_probability=float(os.getenv('MEMORY_SAVE_PROBABILITY', '0.1')),
                                 cleanup_interval_hours=float(os.getenv('MEMORY_CLEANUP_INTERVAL_HOURS', '1')),
                                 cleanup_min_confidence=float(os.getenv('MEMORY_CLEANUP_MIN_CONFIDENCE', '0.3')),
                                 cleanup_max_age_days=int(os.getenv('MEMORY_CLEANUP_MAX_AGE_DAYS', '30')),
                                 contextual_fact_limit=int(os.getenv('MEMORY_CONTEXTUAL_FACT_LIMIT', '5')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     companion=companion_config,
                     session=session_config,
                     memory=memory_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
