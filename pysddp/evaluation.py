from pysddp.utils.statistics import (check_random_state, compute_CI,
    allocate_jobs)
from concurrent.futures import ThreadPoolExecutor
import numpy


class Evaluation(object):
    """Evaluation of the policy given by the current cuts.

    Parameters
    ----------
    MSP: MSLP
        A multi-stage stochastic program object.

    Attributes
    ----------
    db: float
        The deterministic bound.

    pv: list
        The simulated policy values.

    epv: float
        The exact value of expected policy value (only available if
        simulation is turned off).

    CI: tuple
        The CI of simulated policy values.

    gap: float
        The gap between the policy value (the upper end of the CI for
        minimization, the lower end for maximization) and deterministic
        bound. -1 if risk averse or the bound is zero.

    n_sample_paths: int
        The number of sample paths to evaluate policy.

    sample_path_idx: list
        The exhaustive sample paths if simulation is turned off.
    """
    def __init__(self, MSP):
        self.MSP = MSP
        self.db = MSP.db
        self.pv = None
        self.CI = None
        self.epv = None
        self.gap = None
        self.n_simulations = None
        self.n_sample_paths = None
        self.sample_path_idx = None

    def _compute_gap(self):
        # the gap is only available for risk neutral problems
        if self.MSP.measure != 'risk neutral' or not self.db:
            self.gap = -1
            return
        MSP = self.MSP
        if self.CI is not None:
            if MSP.sense == 1:
                self.gap = abs( (self.CI[1]-self.db) / self.db )
            else:
                self.gap = abs( (self.db-self.CI[0]) / self.db )
        elif self.epv is not None:
            self.gap = abs( (self.epv-self.db) / self.db )
        else:
            self.gap = abs( (self.pv[0]-self.db) / self.db )

    def converged(self, tol):
        """Whether the policy is optimal up to tol: the gap is not larger
        than tol or the CI of the policy value covers the deterministic
        bound."""
        if self.gap is not None and 0 <= self.gap <= tol:
            return True
        if (
            self.CI is not None
            and self.MSP.measure == 'risk neutral'
            and self.CI[0] <= self.db <= self.CI[1]
        ):
            return True
        return False

    def _compute_sample_path_idx(self):
        if self.n_simulations == -1:
            self.n_sample_paths, self.sample_path_idx = (
                self.MSP._enumerate_sample_paths())
        else:
            self.n_sample_paths = self.n_simulations

    def run(self, n_simulations, percentile=95, random_state=None,
            n_processes=1):
        """Run a Monte Carlo simulation to evaluate the policy.

        Parameters
        ----------
        n_simulations: int/-1
            If int: the number of simulations;
            If -1: exhaustive evaluation.

        percentile: float, optional (default=95)
            The percentile used to compute the confidence interval.

        random_state: int, RandomState instance or None, optional (default=None)
            Used to generate the random states of the simulations.

        n_processes: int, optional (default=1)
            The number of threads to run the simulation.
        """
        from pysddp.solver import SDDP
        MSP = self.MSP
        MSP._update()
        self.solver = SDDP(MSP)
        self.db = MSP.db
        self.CI = self.epv = self.gap = self.sample_path_idx = None
        self.n_simulations = n_simulations
        self._compute_sample_path_idx()
        random_state = check_random_state(random_state)
        seed = random_state.randint(numpy.iinfo(numpy.int32).max)
        n_processes = max(1, min(n_processes, self.n_sample_paths))
        jobs = allocate_jobs(self.n_sample_paths, n_processes)
        with ThreadPoolExecutor(max_workers=n_processes) as executor:
            pv = [
                item
                for result in executor.map(
                    self.run_single, jobs, [seed] * len(jobs))
                for item in result
            ]
        self.pv = pv
        if self.n_simulations == -1:
            self.epv = numpy.dot(
                pv,
                [
                    MSP._compute_weight_sample_path(self.sample_path_idx[j])
                    for j in range(self.n_sample_paths)
                ],
            )
        if self.n_simulations not in [-1,1]:
            self.CI = compute_CI(self.pv, percentile)
        self._compute_gap()

    def run_single(self, jobs, seed):
        random_state = numpy.random.RandomState([seed, jobs[0]])
        pv = []
        for j in jobs:
            sample_path_idx = (self.sample_path_idx[j]
                if self.sample_path_idx is not None else None)
            result = self.solver._forward(
                random_state=random_state,
                sample_path_idx=sample_path_idx,
            )
            pv.append(result['pv'])
        return pv
