"""
Orion Agent - conversation memory and decision core for an LLM chat agent.
"""

__version__ = "0.1.0"
