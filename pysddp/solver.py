from pysddp.utils.logger import LoggerSDDP, LoggerEvaluation
from pysddp.utils.statistics import (check_random_state, rand_int, compute_CI,
    allocate_jobs)
from pysddp.utils.exception import ConvergenceWarning
from pysddp.evaluation import Evaluation
from concurrent.futures import ThreadPoolExecutor
import threading
import warnings
import time
import numpy
import pandas


class SDDP(object):
    """
    SDDP solver.

    Parameters
    ----------
    MSP: MSLP
        A multi-stage stochastic program object.

    Attributes
    ----------
    db: list
        The deterministic bound of every iteration.

    pv: list
        The policy values of the forward passes of every iteration.

    status: str
        The reason the last call of solve stopped: "converged",
        "iteration_limit", "time_limit" or "interrupted".
    """

    def __init__(self, MSP):
        self.db = []
        self.pv = []
        self.MSP = MSP
        self.iteration = 0
        self.n_processes = 1
        self.n_steps = 1
        self.percentile = 95
        self.status = None
        self.total_time = 0
        self._stop = threading.Event()

    def __repr__(self):
        return (
            "<SDDP solver instance, {} threads, {} steps>"
            .format(self.n_processes, self.n_steps)
        )

    def stop(self):
        """Ask solve to stop. Takes effect at the next iteration boundary."""
        self._stop.set()

    def _forward(self, random_state=None, sample_path_idx=None):
        """Single forward step.

        Parameters
        ----------
        random_state: RandomState instance
            Used to sample Markov states and noise realizations.

        sample_path_idx: list, optional
            A sample path of (Markov state, sample) pairs to follow instead of
            sampling.
        """
        MSP = self.MSP
        forward_solution = [None for _ in range(MSP.T)]
        noise_solution = [None for _ in range(MSP.T)]
        Markov_state_path = [0 for _ in range(MSP.T)]
        pv = 0
        state = 0
        # time loop
        for t in range(MSP.T):
            if sample_path_idx is not None:
                state, scen = sample_path_idx[t]
                m = MSP.models[t][state]
            else:
                state = MSP._sample_Markov_state(t, state, random_state)
                m = MSP.models[t][state]
                scen = (
                    0 if t == 0
                    else rand_int(
                        k=m.n_samples,
                        probability=m.probability,
                        random_state=random_state,
                    )
                )
            with m.lock:
                if t > 0:
                    m._update_link_constrs(
                        forward_solution[t-1], noise_solution[t-1])
                m._update_uncertainty(scen)
                m._solve("forward", scen)
                forward_solution[t], noise_solution[t] = (
                    MSP._get_forward_solution(m))
                pv += MSP._get_stage_cost(m, t)
            Markov_state_path[t] = state
        #! time loop
        return {
            'forward_solution': forward_solution,
            'noise_solution': noise_solution,
            'Markov_state_path': Markov_state_path,
            'pv': pv,
        }

    def _compute_cuts(self, t, j, objLPScen, gradLPScen):
        """Aggregate the outcomes of stage t into the cut of stage t-1 Markov
        state j by the risk measure of stage t. Outcomes are ordered by
        reachable Markov state then by sample."""
        MSP = self.MSP
        probability = numpy.concatenate([
            MSP.transition_matrix[t][j][k]
            * numpy.array(MSP._get_probability(m))
            for k, m in enumerate(MSP.models[t])
            if MSP.reachable[t][k]
        ])
        return MSP.measures[t](
            numpy.concatenate(objLPScen),
            numpy.vstack(gradLPScen),
            probability,
            MSP.sense,
        )

    def _backward(self, forward_solution, noise_solution):
        """Single backward step. Cuts of stage t-1 are built from the current
        cuts of stage t at the trial point of stage t-1 and added to every
        reachable Markov state of stage t-1."""
        MSP = self.MSP
        for t in range(MSP.T-1, 0, -1):
            objLPScen, gradLPScen = [], []
            for k, m in enumerate(MSP.models[t]):
                if not MSP.reachable[t][k]:
                    continue
                with m.lock:
                    m._update_link_constrs(
                        forward_solution[t-1], noise_solution[t-1])
                    obj, grad = m._solveLP()
                objLPScen.append(obj)
                gradLPScen.append(grad)
            for j, m in enumerate(MSP.models[t-1]):
                if not MSP.reachable[t-1][j]:
                    continue
                objLP, gradLP = self._compute_cuts(
                    t, j, objLPScen, gradLPScen)
                cut = m.value_function.build_cut(
                    objLP,
                    gradLP,
                    forward_solution[t-1],
                    noise_solution[t-1],
                    t-1,
                    j,
                )
                m.value_function.add_cut(cut)

    def _SDDP_single_thread(self, jobs, seed):
        """Forward steps of the given jobs by a single thread. The random
        state is constructed by the seed of the iteration and the index of
        the first job the thread does."""
        random_state = numpy.random.RandomState([seed, jobs[0]])
        return [self._forward(random_state) for _ in jobs]

    def _SDDP_iteration(self, executor, seed):
        """Run n_steps forward steps, then the corresponding backward steps.
        Returns the policy values."""
        jobs = allocate_jobs(self.n_steps, self.n_processes)
        forwards = [
            result
            for results in executor.map(
                self._SDDP_single_thread, jobs, [seed] * len(jobs))
            for result in results
        ]
        # barrier between the forward steps and the backward steps
        list(
            executor.map(
                lambda forward: self._backward(
                    forward['forward_solution'], forward['noise_solution']),
                forwards,
            )
        )
        return [forward['pv'] for forward in forwards]

    def _compute_bound(self):
        m = self.MSP.models[0][0]
        with m.lock:
            m._update_uncertainty(0)
            m._solve("bound")
            return m.objVal

    def solve(
            self,
            n_processes=1,
            n_steps=1,
            max_iterations=10000,
            max_stable_iterations=10000,
            max_time=1000000.0,
            tol=0.001,
            tol_stable=1e-8,
            freq_evaluations=None,
            n_simulations=3000,
            percentile=95,
            random_state=None,
            logFile=0,
            logToConsole=1,
            directory=''):
        """Solve approximation model.

        Parameters
        ----------

        n_processes: int, optional (default=1)
            The number of threads to run forward and backward steps.
            It is coerced to be at most n_steps.

        n_steps: int, optional (default=1)
            The number of forward/backward steps to run in each cut iteration.

        max_iterations: int, optional (default=10000)
            The maximum number of iterations to run in this call of solve.

        max_stable_iterations: int, optional (default=10000)
            The number of consecutive iterations with a stable deterministic
            bound after which the algorithm is considered converged.

        max_time: float, optional (default=1e6)
            The maximum time (seconds) to spend in this call of solve.

        tol: float, optional (default=1e-3)
            tolerance for convergence of bounds

        tol_stable: float, optional (default=1e-8)
            Relative change of the deterministic bound regarded as stable.

        freq_evaluations: int, optional (default=None)
            The frequency of evaluating gap on approximation model. The gap
            is not available if risk averse.

        n_simulations: int, optional (default=3000)
            The number of simulations to run when evaluating a policy
            on approximation model. If -1, evaluate exhaustively.

        percentile: float, optional (default=95)
            The percentile used to compute confidence interval

        random_state: int, RandomState instance or None, optional (default=None)
            Used to generate the random states of forward steps and
            evaluations.
            If int, random_state is the seed used by the random number
            generator;
            If RandomState instance, random_state is the random number
            generator;
            If None, the random number generator is the RandomState
            instance used by numpy.random.

        logFile: binary, optional (default=0)
            Switch of logging to log file

        logToConsole: binary, optional (default=1)
            Switch of logging to console

        directory: str, optional (default='')
            The directory (prefix) of the log files.

        Returns
        -------
        status: str
            "converged", "iteration_limit", "time_limit" or "interrupted".
            A ConvergenceWarning is issued unless converged.

        Examples
        --------

        >>> SDDP(msp).solve(max_iterations=10, max_time=10,
            max_stable_iterations=10)
        Optimality gap based stopping criteria: evaluate the obtained policy
        every freq_evaluations iterations by running n_simulations Monte Carlo
        simulations. If the gap becomes not larger than tol, or the CI covers
        the deterministic bound, the algorithm will be stopped.
        >>> SDDP(msp).solve(freq_evaluations=10, n_simulations=1000, tol=1e-2)
        Simulation can be turned off; the solver will evaluate the exact expected
        policy value.
        >>> SDDP(msp).solve(freq_evaluations=10, n_simulations=-1, tol=1e-2)
        """
        MSP = self.MSP
        MSP._update()
        random_state = check_random_state(random_state)
        self._stop.clear()
        self.n_steps = n_steps
        self.n_processes = max(1, min(n_steps, n_processes))
        self.percentile = percentile
        stable_iterations = 0
        total_time = 0
        iteration_start = self.iteration
        db_past = self.db[-1] if self.db else None
        status = None

        logger_sddp = LoggerSDDP(
            logFile=logFile,
            logToConsole=logToConsole,
            n_processes=self.n_processes,
            n_steps=self.n_steps,
            percentile=self.percentile,
            directory=directory,
        )
        logger_sddp.header()
        if freq_evaluations is not None:
            logger_evaluation = LoggerEvaluation(
                n_simulations=n_simulations,
                percentile=percentile,
                logFile=logFile,
                logToConsole=logToConsole,
                directory=directory,
            )
            logger_evaluation.header()
        try:
            with ThreadPoolExecutor(max_workers=self.n_processes) as executor:
                while True:
                    if self.iteration - iteration_start >= max_iterations:
                        status = "iteration_limit"
                        break
                    if total_time >= max_time:
                        status = "time_limit"
                        break
                    if self._stop.is_set():
                        status = "interrupted"
                        break
                    start = time.time()

                    seed = random_state.randint(numpy.iinfo(numpy.int32).max)
                    pv = self._SDDP_iteration(executor, seed)
                    db = self._compute_bound()
                    self.db.append(db)
                    MSP.db = db
                    self.pv.append(pv)
                    if self.n_steps > 1:
                        CI = compute_CI(pv, percentile)

                    if db_past is not None and (
                        abs(db - db_past) <= tol_stable * max(1, abs(db))
                    ):
                        stable_iterations += 1
                    else:
                        stable_iterations = 0
                    self.iteration += 1
                    db_past = db

                    elapsed_time = time.time() - start
                    total_time += elapsed_time

                    if self.n_steps == 1:
                        logger_sddp.text(
                            iteration=self.iteration,
                            db=db,
                            pv=pv[0],
                            time=elapsed_time,
                        )
                    else:
                        logger_sddp.text(
                            iteration=self.iteration,
                            db=db,
                            CI=CI,
                            time=elapsed_time,
                        )
                    if stable_iterations >= max_stable_iterations:
                        status = "converged"
                        break
                    if (
                        freq_evaluations is not None
                        and self.iteration % freq_evaluations == 0
                    ):
                        start = time.time()
                        evaluation = Evaluation(MSP)
                        evaluation.run(
                            n_simulations=n_simulations,
                            percentile=percentile,
                            random_state=random_state,
                            n_processes=self.n_processes,
                        )
                        elapsed_time = time.time() - start
                        total_time += elapsed_time
                        if n_simulations == -1:
                            logger_evaluation.text(
                                iteration=self.iteration,
                                db=db,
                                pv=evaluation.epv,
                                gap=evaluation.gap,
                                time=elapsed_time,
                            )
                        elif n_simulations == 1:
                            logger_evaluation.text(
                                iteration=self.iteration,
                                db=db,
                                pv=evaluation.pv[0],
                                gap=evaluation.gap,
                                time=elapsed_time,
                            )
                        else:
                            logger_evaluation.text(
                                iteration=self.iteration,
                                db=db,
                                CI=evaluation.CI,
                                gap=evaluation.gap,
                                time=elapsed_time,
                            )
                        if evaluation.converged(tol):
                            status = "converged"
                            break
        except KeyboardInterrupt:
            status = "interrupted"
        finally:
            self.total_time += total_time
            if status is None:
                logger_sddp.close()
                if freq_evaluations is not None:
                    logger_evaluation.close()
        # SDDP iteration stops
        self.status = status
        reasons = {
            "converged": "convergence has reached",
            "iteration_limit":
                "iteration:{} has reached".format(max_iterations),
            "time_limit": "time:{} has reached".format(max_time),
            "interrupted": "interruption by the user",
        }
        logger_sddp.footer(reason=reasons[status])
        logger_sddp.close()
        if freq_evaluations is not None:
            logger_evaluation.footer()
            logger_evaluation.close()
        if status != "converged":
            warnings.warn(
                "SDDP stops before convergence, status: {}".format(status),
                ConvergenceWarning,
            )
        return status

    @property
    def first_stage_solution(self):
        """the obtained solution of state variables(s) in the first stage"""
        return {
            var.varName: var.X for var in self.MSP.models[0][0].states
        }

    @property
    def bounds(self):
        """dataframe of the obtained bound"""
        df = pandas.DataFrame.from_records(self.pv)
        df['db'] = self.db
        return df
