"""
Shared settings, models and LLM access for the Slide Copilot service.
"""

__version__ = "0.1.0"

# Convenience re-exports
from .models import *  # noqa: F401,F403
from .config import get_settings  # noqa: F401
from .llm_client import get_llm_client  # noqa: F401
