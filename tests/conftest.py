import numpy as np
import pytest

@pytest.fixture
def rng():
    return np.random.default_rng(42)

def make_grouped_gaussian(rng, sizes=(25, 25, 25, 25), p=20, noise=0.1, betas=None, labels=None):
    """Stacked (X, y, groups, B) with one true coefficient column per group."""
    k = len(sizes)
    labels = list(range(k)) if labels is None else list(labels)
    if betas is None:
        shared = rng.standard_normal(p)
        betas = shared[:, None] + 0.3 * rng.standard_normal((p, k))
    X = rng.standard_normal((sum(sizes), p))
    groups = np.repeat(np.asarray(labels), sizes)
    codes = np.repeat(np.arange(k), sizes)
    y = np.einsum("ij,ji->i", X, betas[:, codes]) + noise * rng.standard_normal(sum(sizes))
    # shuffle so groups are not contiguous
    perm = rng.permutation(len(y))
    return X[perm], y[perm], groups[perm], betas

def group_rows(groups, label):
    return np.flatnonzero(np.asarray(groups) == label)
