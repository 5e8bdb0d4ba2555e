"""
Shared utilities: seeded randomness and logging setup.
"""

from .random import set_random_seed, get_prng, make_prng
from .logging import configure_logging

__all__ = ['set_random_seed', 'get_prng', 'make_prng', 'configure_logging']
