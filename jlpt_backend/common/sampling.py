"""
Random sampling helpers shared by the question sampling strategies.

Every helper takes the random source explicitly; nothing here touches the
module-level ``random`` generator, so a seeded ``random.Random`` replays the
same draws.
"""

from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, TypeVar

from jlpt_backend.config import settings

T = TypeVar("T")


def make_random_source(seed: Optional[int] = None) -> random.Random:
    """
    Build a random source for one request.

    ``seed`` wins over ``settings.SAMPLER_SEED``; with neither set the
    generator is seeded from the OS.
    """
    if seed is None:
        seed = settings.SAMPLER_SEED
    return random.Random(seed)


def shuffled(items: Iterable[T], rng: random.Random) -> List[T]:
    """Return a Fisher-Yates shuffled copy of ``items``; the input is left untouched."""
    result = list(items)
    rng.shuffle(result)
    return result


def take_random(items: Sequence[T], count: int, rng: random.Random) -> List[T]:
    """
    Uniformly draw up to ``count`` items without replacement.

    Shuffles a copy and takes its prefix, so a short input yields all of
    its items in random order.
    """
    if count <= 0:
        return []
    return shuffled(items, rng)[:count]
