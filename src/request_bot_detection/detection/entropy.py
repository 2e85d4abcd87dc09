"""
Shannon entropy of strings.
"""

from collections import Counter

import numpy as np


def shannon_entropy(value: str) -> float:
    """
    Base-2 Shannon entropy of a string's character distribution.

    entropy = -sum(p(c) * log2(p(c))) over the distinct characters c.

    Examples:
        >>> shannon_entropy("aaaaaaaaaa")
        0.0
        >>> shannon_entropy("abcd")
        2.0
        >>> shannon_entropy("")
        0.0
    """
    if not value:
        return 0.0

    counts = np.fromiter(Counter(value).values(), dtype=float)
    probabilities = counts / len(value)
    entropy = -np.sum(probabilities * np.log2(probabilities))
    # -0.0 for single-symbol strings
    return float(abs(entropy))
