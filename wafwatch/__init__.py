"""
WAF Watch
AWS WAF log monitoring, statistics and IP blacklist automation
"""

__version__ = "1.0.0"
__description__ = "AWS WAF log detection and blacklist pipeline"

__all__ = [
    "__version__",
    "__description__",
]
