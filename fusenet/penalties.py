import numpy as np
import cvxpy as cp


def weighted_incidence(W):
    """
    Edge-by-group matrix D with one row sqrt(W_ij) (e_i - e_j) per edge i < j,
    so that D^T D is the Laplacian of W.
    """
    k = W.shape[0]
    rows, cols = np.nonzero(np.triu(W, k=1))
    D = np.zeros((len(rows), k))
    s = np.sqrt(W[rows, cols])
    D[np.arange(len(rows)), rows] = s
    D[np.arange(len(rows)), cols] = -s
    return D


def lasso_penalty(beta, lam, penalty_factors):
    return lam * cp.sum(cp.multiply(penalty_factors[:, None], cp.abs(beta)))


def l2_fusion_penalty(beta, gamma, D):
    # gamma/2 tr(B L B^T) = gamma/2 ||B D^T||_F^2
    if D.shape[0] == 0:
        return 0
    return 0.5 * gamma * cp.sum_squares(beta @ D.T)


def fused_penalty(beta, lam, gamma, D, penalty_factors):
    return lasso_penalty(beta, lam, penalty_factors) + l2_fusion_penalty(beta, gamma, D)
