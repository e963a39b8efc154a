"""
Surrogate key generation modules.
"""

from .surrogate_key import SurrogateKeyGenerator, render_value

__all__ = [
    "SurrogateKeyGenerator",
    "render_value"
]
