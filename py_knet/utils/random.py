"""
Random number generation utilities.

Layout code draws from a process-wide Alea PRNG unless an explicit seed is
configured, so repeated runs with the same seed reproduce the same layout.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..core.alea_prng import AleaPRNG

# Global PRNG instance
_prng = None


def set_random_seed(seed: str) -> None:
    """
    Reset the process-wide Alea PRNG with ``seed``.

    Args:
        seed: Seed string to use
    """
    from ..core.alea_prng import AleaPRNG

    global _prng
    _prng = AleaPRNG(seed)


def get_prng() -> "AleaPRNG":
    """
    Get the process-wide Alea PRNG instance.

    Seeded from ``settings.layout_seed`` on first use, or "default".

    Returns:
        AleaPRNG instance
    """
    global _prng
    if _prng is None:
        from ..config import settings
        from ..core.alea_prng import AleaPRNG

        _prng = AleaPRNG(settings.layout_seed or "default")
    return _prng


def make_prng(seed: Optional[str] = None) -> "AleaPRNG":
    """Return a fresh PRNG for ``seed``, or the shared one when no seed is given."""
    if seed is not None:
        from ..core.alea_prng import AleaPRNG

        return AleaPRNG(seed)
    return get_prng()
