from pysddp.sp import StochasticModel
from pysddp.value_function import (Cut, DefaultCutOracle, DefaultValueFunction,
    RHSAR1ValueFunction)
from pysddp.utils.measure import Expectation, Expectation_AVaR
from pysddp.utils.statistics import check_transition_matrix
from pysddp.utils.exception import ModelConstructionError
from functools import partial
from collections import abc
import numbers
import numpy
import pandas


class MSLP(object):
    """
    A multistage stochastic linear program composed of StochasticModels, one
    for each (stage, Markov state) pair.

    Parameters
    ----------
    T: integer (>=1)
        The number of stages.

    bound: float, optional
        A known uniform lower bound or upper bound (depending on optimization
        sense) for each stage problem.
        Default value is -1B for minimization problem and 1B for maximization
        problem.

    sense: +1/-1, optional, default=1
        The optimization sense. +1 indicates minimization and -1 indicates
        maximization.

    outputFlag: 1/0, optional, default=0
        Log model solving process or not.

    discount: float between 0(exclusive) and 1(inclusive), optional (default=1)
        The discount factor used to compute present value.

    pruning: bool, optional, default=False
        Whether cut oracles drop dominated cuts.

    **kwargs: optional
        Gurobipy parameters to specify on individual StochasticModels. (e.g.,
        presolve, method)

    Methods
    -------
    add_MC_uncertainty:
        Set Markov chain transition matrices.

    construct:
        Build every (stage, Markov state) problem with a callback.

    set_AVaR, set_risk_measure:
        Set risk measures on stage transitions.

    Examples
    --------
    >>> msp = MSLP(T=3, bound=0)
    >>> msp.add_MC_uncertainty([[[1]], [[0.5, 0.5]], [[0.7, 0.3], [0.2, 0.8]]])
    >>> def build(m, t, k):
    ...     now, past = m.addStateVar(ub=10, name="stock", initial=5)
    ...     buy = m.addVar(name="buy", obj=[1.0, 2.0][k])
    ...     m.addConstr(now == past + buy)
    >>> msp.construct(build)
    """
    def __init__(
            self,
            T,
            bound=None,
            sense=1,
            outputFlag=0,
            discount=1.0,
            pruning=False,
            **kwargs):
        if (T < 1
                or discount > 1
                or discount <= 0
                or sense not in [-1, 1]
                or outputFlag not in [0, 1]):
            raise ModelConstructionError(
                'Arguments of SDDP construction are not valid!')

        self.T = T
        self.discount = discount
        self.bound = bound
        self.sense = sense
        self.pruning = pruning
        self.n_Markov_states = [1] * T
        self.transition_matrix = [numpy.ones((1, 1)) for _ in range(T)]
        self.reachable = [numpy.array([True]) for _ in range(T)]
        self.measures = [Expectation] * T
        self.measure = 'risk neutral'
        self._type = 'stage-wise independent'
        self._outputFlag = outputFlag
        self._params = kwargs
        self._set_up_default_bound()
        self._set_up_model()
        self._flag_update = 0
        self.db = None
        self.cuts_info = None

    def __repr__(self):
        sense = 'Minimization' if self.sense == 1 else 'Maximization'
        string = ("<SDDP instance {} {} {} problem, {} stages, "
            + "{} discount, {} known bound>")
        return string.format(sense, self.measure, self._type, self.T,
            self.discount, self.bound)

    def __getitem__(self, t):
        return (
            self.models[t][0]
            if self.n_Markov_states[t] == 1
            else self.models[t]
        )

    def _set_up_default_bound(self):
        if self.bound is None:
            self.bound = -1000000000 if self.sense == 1 else 1000000000

    def _set_up_model(self):
        self.models = [
            [
                StochasticModel(
                    name="{}_{}".format(t, k), stage=t, Markov_state=k)
                for k in range(self.n_Markov_states[t])
            ]
            for t in range(self.T)
        ]
        for t in range(self.T):
            for m in self.models[t]:
                m.Params.outputFlag = self._outputFlag
                m.setAttr('modelsense', self.sense)
                for k, v in self._params.items():
                    m.setParam(k, v)

    def _reachable_models(self, t):
        return [
            m for k, m in enumerate(self.models[t]) if self.reachable[t][k]
        ]

    def add_MC_uncertainty(self, transition_matrix):
        """Add a Markov chain process. Must be called before the stage models
        are built since every Markov state gets its own StochasticModel.

        Parameters
        ----------
        transition_matrix: list of matrix-like
            Markov chain transition matrices in each stage. The dimension of
            all entries must be in the form of:
            [[1]], [1,p_{1}], [p_{1},p_{2}], ..., [p_{T-2},p_{T-1}]
            where p_1,...p_{T-1} are the numbers of Markov states.
            Rows of reachable Markov states must sum to one. Rows of
            unreachable Markov states may be all-zero.

        Examples
        --------
        >>> add_MC_uncertainty(
        ...     transition_matrix=[
        ...         [[1]],
        ...         [[0.6,0.4]],
        ...         [[0.6,0.4,0.0],[0.3,0.7,0.0]]
        ...     ]
        ... )
        """
        if self._type == 'Markov chain':
            raise ValueError("Markovian uncertainty has already added!")
        if any(m.NumVars != 0 for M in self.models for m in M):
            raise ValueError(
                "Markov chain must be added before building the stage models!")
        self.n_Markov_states, self.reachable = check_transition_matrix(
            transition_matrix, self.T)
        self.transition_matrix = [
            numpy.array(item, dtype='float64') for item in transition_matrix
        ]
        self._type = 'Markov chain'
        self._set_up_model()

    def construct(self, builder):
        """Build the stage problems by calling builder(m, t, k) once for
        every (stage t, Markov state k) pair.

        Returns
        -------
        The MSLP itself.
        """
        for t in range(self.T):
            for k, m in enumerate(self.models[t]):
                builder(m, t, k)
                m.update()
        return self

    def set_risk_measure(self, measure, stages=None):
        """Set the risk measure used to aggregate the outcomes of a stage
        transition.

        Parameters
        ----------
        measure: callable
            measure(obj, grad, p, sense) -> (obj, grad), see
            pysddp.utils.measure.

        stages: list, optional (default: 1,...,T-1)
            The stages the measure is set on.
        """
        stages = range(1, self.T) if stages is None else stages
        for t in stages:
            if not 1 <= t < self.T:
                raise ValueError("Risk measures are set on stages 1 to T-1!")
            self.measures[t] = measure
        self.measure = (
            'risk neutral'
            if all(item is Expectation for item in self.measures)
            else 'risk averse'
        )

    def set_AVaR(self, l, a):
        """Set linear combination of expectation and conditional value at risk
        (average value at risk) as risk measure

        Parameters
        ----------
        l: float between 0 and 1/array-like of floats between 0 and 1
            The weights of AVaR from stage 2 to stage T
            If float, the weight will be assigned to the same number.
            If array-like, must be of length T-1.

        a: float between 0 and 1/array-like of floats between 0 and 1
            The quantile parameters in value-at-risk from stage 2 to stage T
            If float, those parameters will be assigned to the same number.
            If array-like, must be of length T-1.

        Notes
        -----
            Bigger l means more risk averse;
            smaller a  means more risk averse.
        """
        if isinstance(l, (abc.Sequence, numpy.ndarray)):
            if len(l) != self.T-1:
                raise ValueError("Length of l must be T-1!")
            if not all(item <= 1 and item >= 0 for item in l):
                raise ValueError("l must be between 0 and 1!")
            l = [None] + list(l)
        elif isinstance(l, (numbers.Number)):
            if l > 1 or l < 0:
                raise ValueError("l must be between 0 and 1!")
            l = [None] + [l] * (self.T-1)
        else:
            raise TypeError("l should be float/array-like instead of "
                "{}!".format(type(l)))
        if isinstance(a, (abc.Sequence, numpy.ndarray)):
            if len(a) != self.T-1:
                raise ValueError("Length of a must be T-1!")
            if not all(item <= 1 and item > 0 for item in a):
                raise ValueError("a must be between 0 and 1!")
            a = [None] + list(a)
        elif isinstance(a, (numbers.Number)):
            if a > 1 or a <= 0:
                raise ValueError("a must be between 0 and 1!")
            a = [None] + [a] * (self.T-1)
        else:
            raise TypeError("a should be float/array-like instead of "
                "{}!".format(type(a)))
        for t in range(1, self.T):
            self.set_risk_measure(
                partial(Expectation_AVaR, a=a[t], l=l[t]), stages=[t])

    def _check_first_stage_model(self):
        """Ensure the first stage model is deterministic. The First stage model
        is only allowed to have uncertainty with length one."""
        m = self.models[0][0]
        if m.n_samples != 1:
            raise ModelConstructionError("First stage must be deterministic!")
        if self.T > 1 and m.states == []:
            raise ModelConstructionError("State variables must be set!")

    def _check_individual_stage_models(self):
        """Check the state and noise dimensions of consecutive stages agree."""
        for t in range(self.T):
            M = self._reachable_models(t)
            for m in M:
                if m.n_states != M[0].n_states:
                    raise ModelConstructionError(
                        "Markov states of stage {} have different numbers of "
                        "state variables!".format(t)
                    )
                if m.n_noise_states != M[0].n_noise_states:
                    raise ModelConstructionError(
                        "Markov states of stage {} have different dimensions "
                        "of noise!".format(t)
                    )
                if len(m.noise_local_copies) != len(M[0].noise_local_copies):
                    raise ModelConstructionError(
                        "Markov states of stage {} must either all or none "
                        "depend on the noise of stage {}!".format(t, t-1)
                    )
            if t == 0:
                for m in M:
                    if m.noise_local_copies != []:
                        raise ModelConstructionError(
                            "AR1 noise of the first stage must not have "
                            "coefficients!"
                        )
                continue
            previous = self._reachable_models(t-1)[0]
            for m in M:
                if len(m.local_copies) != previous.n_states:
                    raise ModelConstructionError(
                        "Stage {} has {} local copies while stage {} has {} "
                        "state variables!".format(
                            t, len(m.local_copies), t-1, previous.n_states)
                    )
                if len(m.noise_local_copies) not in [0, previous.n_noise_states]:
                    raise ModelConstructionError(
                        "AR1 coefficients of stage {} expect noise of "
                        "dimension {} while stage {} has noise of dimension {}!"
                        .format(t, len(m.noise_local_copies), t-1,
                            previous.n_noise_states)
                    )

    def _set_up_CTG(self):
        """Create the cost-to-go variable and the value function of every
        reachable stage problem except the last stage. The value function
        depends on the lagged noise if the next stage carries it."""
        for t in range(self.T-1):
            ar = any(
                m.noise_local_copies != [] for m in self._reachable_models(t+1)
            )
            for m in self._reachable_models(t):
                m._set_up_CTG(discount=self.discount, bound=self.bound)
                if m.value_function is not None:
                    continue
                lb = [var.lb for var in m.states]
                ub = [var.ub for var in m.states]
                if ar:
                    lb += [-numpy.inf] * m.n_noise_states
                    ub += [numpy.inf] * m.n_noise_states
                oracle = DefaultCutOracle(
                    self.sense, lb, ub, pruning=self.pruning)
                m.value_function = (
                    RHSAR1ValueFunction(m, oracle)
                    if ar
                    else DefaultValueFunction(m, oracle)
                )

    def _set_up_link_constrs(self):
        for t in range(self.T):
            for m in self._reachable_models(t):
                m._set_up_link_constrs(first_stage=(t == 0))

    def _update(self):
        if self._flag_update:
            return
        for t in range(self.T):
            for m in self.models[t]:
                m.update()
        self._check_first_stage_model()
        self._check_individual_stage_models()
        self._set_up_CTG()
        self._set_up_link_constrs()
        self._flag_update = 1

    def _sample_Markov_state(self, t, k, random_state):
        """Sample the Markov state of stage t given Markov state k of stage
        t-1. Unreachable Markov states have zero probability."""
        if t == 0:
            return 0
        return random_state.choice(
            range(self.n_Markov_states[t]),
            p=self.transition_matrix[t][k]
        )

    def _get_forward_solution(self, m):
        solution = [None for _ in m.states]
        # avoid numerical issues
        for idx, var in enumerate(m.states):
            if var.X < var.lb:
                solution[idx] = var.lb
            elif var.X > var.ub:
                solution[idx] = var.ub
            else:
                solution[idx] = var.X
        noise_solution = [var.X for var in m.noise_states]
        return solution, noise_solution

    def _get_stage_cost(self, m, t):
        # the last stage model does not contain the cost-to-go function
        if m.alpha is not None:
            return pow(self.discount, t) * (
                m.objVal - self.discount * m.alpha.X
            )
        return pow(self.discount, t) * m.objVal

    def _get_probability(self, m):
        """Return uniform measure if no given probability measure"""
        if m.probability is not None:
            return m.probability
        return [1.0/m.n_samples for _ in range(m.n_samples)]

    def _enumerate_sample_paths(self):
        """Enumerate all sample paths with positive probability. A sample
        path is a tuple of (Markov state, sample) pairs, one per stage."""
        sample_paths = [((0, 0),)]
        for t in range(1, self.T):
            extended = []
            for sample_path in sample_paths:
                previous = sample_path[-1][0]
                for k in range(self.n_Markov_states[t]):
                    if self.transition_matrix[t][previous][k] == 0:
                        continue
                    probability = self._get_probability(self.models[t][k])
                    extended += [
                        sample_path + ((k, s),)
                        for s in range(len(probability))
                        if probability[s] != 0
                    ]
            sample_paths = extended
        return len(sample_paths), sample_paths

    def _compute_weight_sample_path(self, sample_path):
        """Compute weight/probability of (going through) a certain sample path."""
        weight = 1.0
        for t, (k, s) in enumerate(sample_path):
            if t > 0:
                weight *= self.transition_matrix[t][sample_path[t-1][0]][k]
            weight *= self._get_probability(self.models[t][k])[s]
        return weight

    def write(self, path, suffix):
        """Write all StochasticModels to files named as stage_t_k (t is the
        stage and k is the index of Markov state)

        Parameters
        ----------
        path: string
            The location to write the StochasticModel

        suffix: string
            The format to write the StochasticModel

        examples
        --------
        write(path = "/Users/lingquan/Desktop", suffix = ".lp")
        """
        for t in range(self.T):
            for k, m in enumerate(self.models[t]):
                m.write(path + "/stage_{}_{}{}".format(t, k, suffix))

    def write_cuts(self, path, name="", author="", description=""):
        """Write all cuts to csv files named as t_k.csv.
        csv files takes the form of:
            x.varName | y.varName | rhs
            a         | b         | c
        which specifies cut:
            alpha >= ax + by + c in minimization problem
            alpha <= ax + by + c in maximization problem

        The name, author and description of the cuts are written to info.csv.

        Parameters
        ----------
        path: string
            The location to write csv files

        name, author, description: string, optional
            Metadata stored along with the cuts.
        """
        self._update()
        pandas.DataFrame(
            {
                "name": [name],
                "author": [author],
                "description": [description],
            },
            columns=["name", "author", "description"],
        ).to_csv(path + "info.csv", index=False)
        for t in range(self.T - 1):
            for k, m in enumerate(self.models[t]):
                if m.value_function is None:
                    continue
                pandas.DataFrame(
                    m.get_cut_coeffs_and_rhs(),
                    columns=[var.varName for var in m.value_function.variables]
                    + ["rhs"],
                ).to_csv(path + "{}_{}.csv".format(t, k))

    def read_cuts(self, path):
        """Read all cuts from csv files written by write_cuts.

        Parameters
        ----------
        path: string
            The location to read csv files

        Returns
        -------
        dict
            The name, author and description stored along with the cuts.
            Also kept as the attribute cuts_info.
        """
        self._update()
        info = pandas.read_csv(
            path + "info.csv", dtype=str, keep_default_na=False)
        self.cuts_info = {
            key: info[key].iloc[0] for key in ["name", "author", "description"]
        }
        for t in range(self.T - 1):
            for k, m in enumerate(self.models[t]):
                if m.value_function is None:
                    continue
                coeffs = pandas.read_csv(
                    path + "{}_{}.csv".format(t, k), index_col=0
                ).values
                for coeff in coeffs:
                    m.value_function.add_cut(
                        Cut(
                            t,
                            k,
                            float(coeff[-1]),
                            tuple(coeff[:m.n_states].tolist()),
                            tuple(coeff[m.n_states:-1].tolist()),
                            None,
                        )
                    )
        return self.cuts_info
