"""Maximum-likelihood fit of the probability distribution of 2D distances (P2D).

For two fluorophores separated by a true distance ``mu`` and localized with an
isotropic error ``sigma``, the measured distance ``r`` follows

    p(r) = r / sigma^2 * exp(-(mu^2 + r^2) / (2 sigma^2)) * I0(r mu / sigma^2)

(Churchman et al., Biophys. J. 2006). The fit either estimates both ``mu``
and ``sigma``, or estimates ``mu`` only with ``sigma`` held fixed.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from scipy.optimize import minimize
from scipy.special import i0e

from PAIRTRACK.src.core.statistics import mean, std_dev

logger = logging.getLogger(__name__)


class FittingException(Exception):
    pass


def _log_i0(x: np.ndarray) -> np.ndarray:
    ax = np.abs(x)
    return np.log(i0e(ax)) + ax


def p2d_pdf(r, mu: float, sigma: float) -> np.ndarray:
    r = np.asarray(r, dtype=np.float64)
    s2 = sigma * sigma
    log_p = np.log(np.maximum(r, 1e-300)) - np.log(s2) - (mu * mu + r * r) / (2.0 * s2) + _log_i0(r * mu / s2)
    return np.where(r > 0, np.exp(log_p), 0.0)


def neg_log_likelihood(distances: np.ndarray, mu: float, sigma: float) -> float:
    """Negative log-likelihood without the parameter-free sum(log r) term."""
    s2 = sigma * sigma
    terms = -np.log(s2) - (mu * mu + distances * distances) / (2.0 * s2) + _log_i0(distances * mu / s2)
    return float(-np.sum(terms))


class P2DFitter:
    def __init__(self, distances: Sequence[float], fit_sigma: bool, max_iterations: int = 5000):
        self.distances = np.asarray(list(distances), dtype=np.float64)
        self.fit_sigma = bool(fit_sigma)
        self.max_iterations = int(max_iterations)
        self.mu_start: Optional[float] = None
        self.sigma_start: Optional[float] = None

    def set_start_params(self, mu: float, sigma: float) -> None:
        self.mu_start = float(mu)
        self.sigma_start = float(sigma)

    def _validate(self) -> tuple[float, float]:
        d = self.distances
        if d.size < 2:
            raise FittingException(f"P2D fit needs at least 2 distances, got {d.size}")
        if not np.all(np.isfinite(d)) or np.any(d < 0):
            raise FittingException("P2D fit needs finite, non-negative distances")

        mu0 = self.mu_start if self.mu_start is not None else float(np.mean(d))
        sigma0 = self.sigma_start if self.sigma_start is not None else float(np.std(d))
        if not np.isfinite(mu0):
            raise FittingException(f"Invalid start value for mu: {mu0}")
        if not np.isfinite(sigma0) or sigma0 <= 0:
            raise FittingException(f"Sigma must be positive, got {sigma0}")
        return mu0, sigma0

    def solve(self) -> np.ndarray:
        """Return ``[mu, sigma]`` when fitting sigma, ``[mu]`` otherwise."""
        mu0, sigma0 = self._validate()
        d = self.distances

        if self.fit_sigma:
            def objective(x: np.ndarray) -> float:
                return neg_log_likelihood(d, x[0], float(np.exp(x[1])))

            x0 = np.array([mu0, np.log(sigma0)])
        else:
            def objective(x: np.ndarray) -> float:
                return neg_log_likelihood(d, x[0], sigma0)

            x0 = np.array([mu0])

        try:
            res = minimize(
                objective,
                x0,
                method="Nelder-Mead",
                options={"maxiter": self.max_iterations, "xatol": 1e-4, "fatol": 1e-6, "disp": False},
            )
        except (ValueError, FloatingPointError) as e:
            raise FittingException(f"P2D fit failed: {e}") from e

        if not res.success or not np.all(np.isfinite(res.x)):
            raise FittingException(f"P2D fit did not converge: {res.message}")

        mu = abs(float(res.x[0]))
        logger.debug("P2D fit converged after %d iterations (nll=%.4f)", res.nit, res.fun)
        if self.fit_sigma:
            return np.array([mu, float(np.exp(res.x[1]))])
        return np.array([mu])


class SigmaSource:
    DATA = "DATA"
    ESTIMATE = "ESTIMATE"


def resolve_sigma(
    fit_sigma: bool,
    use_sigma_estimate: bool,
    sigma_estimate: Optional[float],
    mean_distances: Sequence[float],
) -> tuple[float, str]:
    """Pick the start (or fixed) sigma for the P2D fit.

    fit_sigma | use_sigma_estimate | sigma
    ----------+--------------------+------------------------------------
    True      | any                | spread of the track mean distances
    False     | True               | supplied estimate, held fixed
    False     | False              | spread of the track mean distances
    """
    if fit_sigma or not use_sigma_estimate:
        return std_dev(mean_distances, mean(mean_distances)), SigmaSource.DATA

    if sigma_estimate is None or not np.isfinite(sigma_estimate) or sigma_estimate <= 0:
        raise FittingException(f"Sigma estimate must be positive, got {sigma_estimate}")
    return float(sigma_estimate), SigmaSource.ESTIMATE
