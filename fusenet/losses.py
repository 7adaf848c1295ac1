import cvxpy as cp


def grouped_l2_loss(blocks, weights, beta):
    """sum_g w_g/2 ||y_g - X_g beta[:, g]||^2 for a (p, k) cvxpy variable."""
    return sum(0.5 * w * cp.sum_squares(Xg @ beta[:, g] - yg)
               for g, ((Xg, yg), w) in enumerate(zip(blocks, weights)))
