"""Session-token generation, weak and strong variants.

generate_simple_random_id() is cheap: an MD5 of the seed, the
nanosecond clock and a process-wide counter. Anyone who knows the seed
and roughly when the call happened can narrow the output down, so it
must never mint anything an attacker benefits from guessing.

generate_random_id() draws 32 fresh bytes from the OS CSPRNG for every
call and uses them as an HMAC key over the seed. The seed only labels
the token; all of the unpredictability comes from os.urandom. This is
the variant SessionManager uses.
"""
from __future__ import annotations

import hashlib
import hmac
import itertools
import os
import time

# itertools.count.__next__ is atomic under the GIL
_counter = itertools.count()

KEY_BYTES = 32


def generate_simple_random_id(seed: str) -> str:
    """Return a 32-char hex id derived from seed, clock and a counter (weak)."""
    material = f"{seed}:{time.time_ns()}:{next(_counter)}".encode("utf-8")
    return hashlib.md5(material, usedforsecurity=False).hexdigest()


def generate_random_id(seed: str) -> str:
    """Return a 64-char hex id that cannot be predicted from seed (strong)."""
    key = os.urandom(KEY_BYTES)
    return hmac.new(key, seed.encode("utf-8"), hashlib.sha256).hexdigest()
