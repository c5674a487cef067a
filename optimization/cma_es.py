"""
CMA-ES Distribution Optimizer
=============================

Derivative-free minimizer over a box-bounded real vector. The search
distribution is a multivariate normal ``N(mean, sigma^2 C)`` refined every
generation:

1. sample ``population_size`` candidates, clamp infeasible ones into the box
   and penalize them by clamp distance times the generation's fitness spread
2. evaluate all candidates in one batched call
3. recombine the best half into the new mean (log-rank weights)
4. update the step-size and covariance evolution paths
5. update ``C`` with a rank-one term, a rank-mu term and, for active CMA, a
   negative rank-mu term from the worst half
6. adapt ``sigma`` toward the expected norm of an isotropic Gaussian

The eigendecomposition of ``C`` is refreshed only every
``~1 / (c1 + cmu) / dimension / 10`` generations. During the first
``n_diagonal_only_iterations`` generations only the diagonal of ``C`` is
adapted and no eigendecomposition happens at all.

The best point seen over the whole run is returned, whatever stops the run.

Usage:
    def sphere(x):                      # x has shape (dimension, k)
        return ((x - 0.3) ** 2).sum(axis=0)

    opt = CMAESDistributionOptimizer(sphere, dimension=2, population_size=8,
                                     max_iterations=200, random_state=1)
    res = opt.optimize()
    res.point, res.value
"""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Union

import numpy as np

from core.exceptions import InvalidProblemError

logger = logging.getLogger(__name__)

BatchObjective = Callable[[np.ndarray], np.ndarray]


class StopReason(Enum):
    """Why an optimization run ended."""
    DIVERGED = "diverged"
    CONVERGED_X = "converged_x"
    FLAT_FITNESS = "flat_fitness"
    FLAT_HISTORY = "flat_history"
    ILL_CONDITIONED = "ill_conditioned"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class OptimizationResult:
    """Best point of a run and how the run went."""
    point: np.ndarray
    value: float
    iterations: int
    stop_reason: StopReason
    value_history: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "point": self.point.tolist(),
            "value": self.value,
            "iterations": self.iterations,
            "stop_reason": self.stop_reason.value,
        }


class FitnessHistory:
    """Bounded window of recent best fitness values."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        self._values: deque = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._values.append(value)

    def minimum(self) -> float:
        return min(self._values) if self._values else math.inf

    def maximum(self) -> float:
        return max(self._values) if self._values else -math.inf

    def __len__(self) -> int:
        return len(self._values)


class CMAESDistributionOptimizer:
    """
    Covariance matrix adaptation evolution strategy with batched evaluation.

    The objective receives an array of shape ``(dimension, k)`` (one column per
    candidate, already clamped into the box) and returns ``k`` values. Every
    ``optimize`` call starts from fresh state.
    """

    def __init__(
        self,
        function: BatchObjective,
        dimension: int,
        population_size: int,
        max_iterations: int,
        is_active_cma: bool = True,
        n_diagonal_only_iterations: int = 0,
        n_resampling_until_feasible: int = 0,
        lower: Optional[np.ndarray] = None,
        upper: Optional[np.ndarray] = None,
        initial_guess: Optional[np.ndarray] = None,
        initial_sigma: float = 1.0,
        random_state: Union[None, int, np.random.Generator] = None,
    ):
        if dimension <= 0:
            raise InvalidProblemError("dimension must be positive", {"dimension": dimension})
        if population_size <= 0:
            raise InvalidProblemError(
                "population size must be positive", {"population_size": population_size}
            )
        if population_size // 2 <= 0:
            raise InvalidProblemError(
                "population size leaves no parents to recombine",
                {"population_size": population_size, "mu": population_size // 2},
            )
        if max_iterations < 0:
            raise InvalidProblemError("iteration budget must be non-negative", {"max_iterations": max_iterations})
        if initial_sigma <= 0:
            raise InvalidProblemError("initial sigma must be positive", {"initial_sigma": initial_sigma})

        self.function = function
        self.dimension = dimension
        self.population_size = population_size
        self.max_iterations = max_iterations
        self.is_active_cma = is_active_cma
        self.n_diagonal_only_iterations = n_diagonal_only_iterations
        self.n_resampling_until_feasible = n_resampling_until_feasible
        self.lower = np.zeros(dimension) if lower is None else np.asarray(lower, dtype=np.float64)
        self.upper = np.ones(dimension) if upper is None else np.asarray(upper, dtype=np.float64)
        if np.any(self.upper < self.lower):
            raise InvalidProblemError("upper bound below lower bound")
        self.initial_guess = None if initial_guess is None else np.asarray(initial_guess, dtype=np.float64)
        self.initial_sigma = initial_sigma
        self.random = (
            random_state if isinstance(random_state, np.random.Generator)
            else np.random.default_rng(random_state)
        )

        # Internal termination criteria
        self.stop_tol_up_x = 1e3
        self.stop_tol_x = 1e-11
        self.stop_tol_fun = 1e-12
        self.stop_tol_hist_fun = 1e-13

        # Selection and recombination
        n = dimension
        self.mu = population_size // 2
        raw_weights = math.log(self.mu + 0.5) - np.log(np.arange(1, self.mu + 1, dtype=np.float64))
        sum_w = raw_weights.sum()
        self.weights = raw_weights / sum_w
        self.mueff = sum_w * sum_w / (raw_weights ** 2).sum()

        # Learning rates
        self.cc = (4 + self.mueff / n) / (n + 4 + 2 * self.mueff / n)
        self.cs = (self.mueff + 2) / (n + self.mueff + 3)
        self.damps = (
            (1 + 2 * max(0.0, math.sqrt((self.mueff - 1) / (n + 1)) - 1))
            * max(0.3, 1 - n / (1e-6 + max_iterations))
            + self.cs
        )
        self.ccov1 = 2 / ((n + 1.3) * (n + 1.3) + self.mueff)
        self.ccovmu = min(1 - self.ccov1, 2 * (self.mueff - 2 + 1 / self.mueff) / ((n + 2) * (n + 2) + self.mueff))
        self.ccov1_sep = min(1.0, self.ccov1 * (n + 1.5) / 3)
        self.ccovmu_sep = min(1 - self.ccov1, self.ccovmu * (n + 1.5) / 3)
        self.chi_n = math.sqrt(n) * (1 - 1 / (4.0 * n) + 1 / (21.0 * n * n))

        self.history_size = 10 + int(3 * 10 * n / population_size)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        n = self.dimension
        self.iterations = 0
        self.sigma = self.initial_sigma
        self.diag_d = np.ones(n)
        self.diag_c = self.diag_d ** 2
        self.pc = np.zeros(n)
        self.ps = np.zeros(n)
        self.normps = 0.0
        self.B = np.eye(n)
        self.D = np.ones(n)
        self.BD = self.B * self.diag_d[np.newaxis, :]
        self.C = self.B @ np.diag(self.D ** 2) @ self.B.T
        self.fitness_history = FitnessHistory(self.history_size)

    def optimize(self) -> OptimizationResult:
        self._reset_state()
        n, lam, mu = self.dimension, self.population_size, self.mu

        guess = self._initial_point()
        fixed_guess = self.repair(guess)
        best_value = float(self._evaluate(fixed_guess[:, np.newaxis])[0]) + self.penalty(guess, fixed_guess)
        self.xmean = guess
        self.fitness_history.push(best_value)
        best_point = fixed_guess
        value_history: List[float] = []
        stop_reason = StopReason.MAX_ITERATIONS

        for self.iterations in range(1, self.max_iterations + 1):
            diagonal_only = self.iterations < self.n_diagonal_only_iterations

            # Generate and evaluate offspring
            arz = self.random.standard_normal((n, lam))
            arx = np.zeros((n, lam))
            fixed = np.zeros((n, lam))
            penalties = np.zeros(lam)
            for k in range(lam):
                for attempt in range(self.n_resampling_until_feasible + 1):
                    if diagonal_only:
                        candidate = self.xmean + self.sigma * (self.diag_d * arz[:, k])
                    else:
                        candidate = self.xmean + self.sigma * (self.BD @ arz[:, k])
                    if attempt >= self.n_resampling_until_feasible or self.is_feasible(candidate):
                        break
                    arz[:, k] = self.random.standard_normal(n)
                arx[:, k] = candidate
                fixed[:, k] = self.repair(candidate)
                penalties[k] = self.penalty(candidate, fixed[:, k])

            raw_fitness = self._evaluate(fixed)
            finite = raw_fitness[np.isfinite(raw_fitness)]
            value_range = float(finite.max() - finite.min()) if finite.size else 0.0
            fitness = np.where(penalties > 0, raw_fitness + penalties * value_range, raw_fitness)

            # Selection and recombination
            arindex = np.argsort(fitness, kind="stable")
            xold = self.xmean
            best_arx = arx[:, arindex[:mu]]
            self.xmean = best_arx @ self.weights
            best_arz = arz[:, arindex[:mu]]
            zmean = best_arz @ self.weights
            hsig = self._update_evolution_paths(zmean, xold)
            if diagonal_only:
                self._update_covariance_diagonal_only(hsig, best_arz)
            else:
                self._update_covariance(hsig, best_arx, arz, arindex, xold)

            # Step-size adaptation
            self.sigma *= math.exp(min(1.0, (self.normps / self.chi_n - 1) * self.cs / self.damps))

            best_fitness = float(fitness[arindex[0]])
            worst_fitness = float(fitness[arindex[-1]])
            if best_value > best_fitness:
                best_value = best_fitness
                best_point = fixed[:, arindex[0]].copy()
            value_history.append(best_value)

            # Termination
            reason = self._check_termination(best_fitness, worst_fitness)
            if reason is not None:
                stop_reason = reason
                break

            # Escape flat fitness
            if best_value == fitness[arindex[int(0.1 + lam / 4.0)]]:
                self.sigma *= math.exp(0.2 + self.cs / self.damps)
            history_best = self.fitness_history.minimum()
            history_worst = self.fitness_history.maximum()
            if self.iterations > 2 and max(history_worst, best_fitness) - min(history_best, best_fitness) == 0:
                self.sigma *= math.exp(0.2 + self.cs / self.damps)

            self.fitness_history.push(best_fitness)

        logger.debug(
            f"CMA-ES stopped after {self.iterations} iterations ({stop_reason.value}), "
            f"best value {best_value:.12g}"
        )
        return OptimizationResult(
            point=best_point,
            value=best_value,
            iterations=self.iterations,
            stop_reason=stop_reason,
            value_history=value_history,
        )

    def _check_termination(self, best_fitness: float, worst_fitness: float) -> Optional[StopReason]:
        sqrt_diag_c = np.sqrt(self.diag_c)
        if np.any(self.sigma * sqrt_diag_c > self.stop_tol_up_x):
            return StopReason.DIVERGED
        if np.all(self.sigma * np.maximum(np.abs(self.pc), sqrt_diag_c) <= self.stop_tol_x):
            return StopReason.CONVERGED_X

        history_best = self.fitness_history.minimum()
        history_worst = self.fitness_history.maximum()
        if (
            self.iterations > 2
            and max(history_worst, worst_fitness) - min(history_best, best_fitness) < self.stop_tol_fun
        ):
            return StopReason.FLAT_FITNESS
        if self.iterations > self.fitness_history.capacity and history_worst - history_best < self.stop_tol_hist_fun:
            return StopReason.FLAT_HISTORY
        # condition number of the covariance matrix exceeds 1e14
        if self.diag_d.max() / self.diag_d.min() > 1e7:
            return StopReason.ILL_CONDITIONED
        return None

    # ------------------------------------------------------------------
    # Adaptation
    # ------------------------------------------------------------------

    def _update_evolution_paths(self, zmean: np.ndarray, xold: np.ndarray) -> bool:
        self.ps = self.ps * (1 - self.cs) + (self.B @ zmean) * math.sqrt(self.cs * (2 - self.cs) * self.mueff)
        self.normps = float(np.linalg.norm(self.ps))
        hsig = (
            self.normps / math.sqrt(1 - (1 - self.cs) ** (2 * self.iterations)) / self.chi_n
            < 1.4 + 2 / (self.dimension + 1.0)
        )
        self.pc = self.pc * (1 - self.cc)
        if hsig:
            self.pc = self.pc + (self.xmean - xold) * (math.sqrt(self.cc * (2 - self.cc) * self.mueff) / self.sigma)
        return hsig

    def _update_covariance_diagonal_only(self, hsig: bool, best_arz: np.ndarray) -> None:
        old_fac = 0.0 if hsig else self.ccov1_sep * self.cc * (2 - self.cc)
        old_fac += 1 - self.ccov1_sep - self.ccovmu_sep
        self.diag_c = (
            self.diag_c * old_fac
            + (self.pc ** 2) * self.ccov1_sep
            + (self.diag_c * ((best_arz ** 2) @ self.weights)) * self.ccovmu_sep
        )
        self.diag_d = np.sqrt(self.diag_c)
        if self.iterations + 1 >= self.n_diagonal_only_iterations:
            # full covariance matrix from the next generation on
            self.B = np.eye(self.dimension)
            self.BD = np.diag(self.diag_d)
            self.C = np.diag(self.diag_c)

    def _update_covariance(
        self,
        hsig: bool,
        best_arx: np.ndarray,
        arz: np.ndarray,
        arindex: np.ndarray,
        xold: np.ndarray,
    ) -> None:
        negccov = 0.0
        if self.ccov1 + self.ccovmu > 0:
            arpos = (best_arx - xold[:, np.newaxis]) / self.sigma
            roneu = np.outer(self.pc, self.pc) * self.ccov1
            # minor correction if hsig is false
            old_fac = 0.0 if hsig else self.ccov1 * self.cc * (2 - self.cc)
            old_fac += 1 - self.ccov1 - self.ccovmu
            rank_mu = arpos @ (self.weights[:, np.newaxis] * arpos.T)
            if self.is_active_cma:
                negccov = (1 - self.ccovmu) * 0.25 * self.mueff / ((self.dimension + 2) ** 1.5 + 2 * self.mueff)
                # keep at least 0.66 in all directions, small popsize is most critical
                negminresidualvariance = 0.66
                # where to make up for the variance loss
                negalphaold = 0.5
                arzneg = arz[:, arindex[::-1][:self.mu]]
                arnorms = np.sqrt((arzneg ** 2).sum(axis=0))
                idxnorms = np.argsort(arnorms, kind="stable")
                ratios = arnorms[idxnorms[::-1]] / arnorms[idxnorms]
                inverse = np.empty_like(idxnorms)
                inverse[idxnorms] = np.arange(len(idxnorms))
                arnorms_inv = ratios[inverse]
                negcov_max = (1 - negminresidualvariance) / float((arnorms_inv ** 2) @ self.weights)
                negccov = min(negccov, negcov_max)
                arzneg = arzneg * arnorms_inv[np.newaxis, :]
                artmp = self.BD @ arzneg
                cneg = (artmp * self.weights[np.newaxis, :]) @ artmp.T
                old_fac += negalphaold * negccov
                self.C = (
                    self.C * old_fac
                    + roneu
                    + rank_mu * (self.ccovmu + (1 - negalphaold) * negccov)
                    - cneg * negccov
                )
            else:
                self.C = self.C * old_fac + roneu + rank_mu * self.ccovmu
        self._update_bd(negccov)

    def _update_bd(self, negccov: float) -> None:
        rate = self.ccov1 + self.ccovmu + negccov
        if rate <= 0:
            return
        interval = max(1, int(1 / rate / self.dimension / 10.0))
        if self.iterations % interval != 0:
            return
        # enforce symmetry to prevent complex numbers
        self.C = np.triu(self.C) + np.triu(self.C, 1).T
        eigenvalues, self.B = np.linalg.eigh(self.C)
        diag_d = eigenvalues.copy()
        if diag_d.min() <= 0:
            diag_d = np.maximum(diag_d, 0.0)
            tfac = diag_d.max() / 1e14
            self.C = self.C + np.eye(self.dimension) * tfac
            diag_d = diag_d + tfac
        if diag_d.max() > 1e14 * diag_d.min():
            tfac = diag_d.max() / 1e14 - diag_d.min()
            self.C = self.C + np.eye(self.dimension) * tfac
            diag_d = diag_d + tfac
        self.D = diag_d
        self.diag_c = np.diag(self.C).copy()
        self.diag_d = np.sqrt(diag_d)  # standard deviations from now on
        self.BD = self.B * self.diag_d[np.newaxis, :]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _initial_point(self) -> np.ndarray:
        if self.initial_guess is not None:
            if self.initial_guess.shape != (self.dimension,):
                raise InvalidProblemError(
                    "initial guess has wrong shape",
                    {"expected": self.dimension, "actual": self.initial_guess.shape},
                )
            return self.initial_guess.copy()
        guess = self.random.random(self.dimension)
        guess /= guess.sum()
        return self.lower + guess * (self.upper - self.lower)

    def _evaluate(self, candidates: np.ndarray) -> np.ndarray:
        values = np.asarray(self.function(candidates), dtype=np.float64).reshape(-1)
        if values.shape[0] != candidates.shape[1]:
            raise InvalidProblemError(
                "objective returned wrong number of values",
                {"expected": candidates.shape[1], "actual": values.shape[0]},
            )
        return values

    def is_feasible(self, x: np.ndarray) -> bool:
        return bool(np.all(x >= self.lower) and np.all(x <= self.upper))

    def repair(self, x: np.ndarray) -> np.ndarray:
        """Fresh copy of ``x`` clamped into the box."""
        return np.clip(x, self.lower, self.upper)

    @staticmethod
    def penalty(x: np.ndarray, repaired: np.ndarray) -> float:
        return float(np.abs(x - repaired).sum())
