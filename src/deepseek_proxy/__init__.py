"""
DeepSeek Proxy: API compatible OpenAI adossée à DeepSeek.
"""

from .core.constants import VERSION

__version__ = VERSION
