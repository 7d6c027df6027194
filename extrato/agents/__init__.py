"""AI Agents package."""

from extrato.agents.ai_agents import (
    AIExtraction,
    AIExtractionError,
    StatementExtractionAgent,
    parse_response_text,
)

__all__ = [
    "AIExtraction",
    "AIExtractionError",
    "StatementExtractionAgent",
    "parse_response_text",
]
