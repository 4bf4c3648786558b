import threading
import gurobipy
import numpy
from collections import abc
from numbers import Number
from pysddp.utils.exception import (SampleSizeError, SolveError,
    ModelConstructionError)


class StochasticModel(object):
    """The StochasticModel class.

    A stage problem of a given Markov state: a Gurobi model together with its
    state variables, their local copies (incoming values), the discrete
    uncertainties on the right-hand side of constraints and the cost-to-go
    variable alpha bounded by the cuts of the value function.

    Every StochasticModel owns its Gurobi environment so that different
    StochasticModels can be solved from different threads. A StochasticModel
    itself must only be modified and solved by the thread holding its lock.
    """
    def __init__(self, name="", env=None, stage=None, Markov_state=None):
        if env is None:
            env = gurobipy.Env(empty=True)
            env.setParam("OutputFlag", 0)
            env.start()
        self.env = env
        self._model = gurobipy.Model(env=env, name=name)
        self.stage = stage
        self.Markov_state = Markov_state
        # each and every instance must have state variables, local copy variables
        self.states = []
        self.local_copies = []
        # fixed incoming values of the first stage
        self.initial_values = []
        # autoregressive noise of this stage and its lagged copies
        self.noise_states = []
        self.noise_local_copies = []
        self.ar_coefficients = None
        # stage-wise independent discrete uncertainties on the rhs
        self.uncertainty_rhs = {}
        # cutting planes approximation of recourse variable alpha
        self.alpha = None
        self.value_function = None
        # linking constraints
        self.link_constrs = []
        self.noise_link_constrs = []
        self._flag_link = 0
        # number of discrete uncertainties
        self.n_samples = 1
        # number of state varibles
        self.n_states = 0
        self.n_noise_states = 0
        # probability measure for discrete uncertainties
        self.probability = None
        self.lock = threading.Lock()

    def __getattr__(self, name):
        try:
            return getattr(self._model, name)
        except AttributeError:
            raise AttributeError("no attribute named {}".format(name))

    def __repr__(self):
        uncertainty = (
            ""
            if self.uncertainty_rhs == {}
            else ", discrete uncertainties on the RHS of constraints"
        )
        noise = (
            ""
            if self.n_noise_states == 0
            else ", {} autoregressive noise".format(self.n_noise_states)
        )
        return (
            "<Stochastic "
            + repr(self._model)[1:-1]
            + ", {} state variables, {} samples".format(
                self.n_states, self.n_samples
            )
            + uncertainty
            + noise
            + ">"
        )

    def _check_uncertainty(self, uncertainty, list_dim, multivariate=None):
        """Make sure the input uncertainty is in the correct form. Return a
        copied uncertainty to avoid making changes to mutable object given by
        the users.

        Uncertainty added by addConstr must be a unidimensional array-like of
        samples (list_dim=1).

        Uncertainty added by addConstrs must be a bidimensional array-like
        of shape (n_samples, list_dim).

        All uncertainties of a StochasticModel must have the same number of
        samples.
        """
        multivariate = list_dim > 1 if multivariate is None else multivariate
        try:
            uncertainty = numpy.array(uncertainty, dtype='float64')
        except (TypeError, ValueError):
            raise ValueError("Scenarios must only contains numbers!")
        if not multivariate:
            if uncertainty.ndim != 1:
                raise ValueError(
                    "dimension of the scenarios is {} while dimension of the "
                    "added object is 1!".format(uncertainty.ndim)
                )
        else:
            if uncertainty.ndim != 2 or uncertainty.shape[1] != list_dim:
                dim = None if uncertainty.ndim != 2 else uncertainty.shape[1]
                raise ValueError(
                    "dimension of the scenarios is {} while dimension of the "
                    "added object is {}!".format(dim, list_dim)
                )
        if len(uncertainty) == 0:
            raise ValueError("Scenarios must not be empty!")
        if self.uncertainty_rhs == {}:
            self.n_samples = len(uncertainty)
        elif self.n_samples != len(uncertainty):
            raise SampleSizeError(
                self._model.modelName,
                self.n_samples,
                uncertainty.tolist(),
                len(uncertainty)
            )
        return uncertainty.tolist()

    def _check_initial(self, initial, variables):
        if initial is None or isinstance(initial, Number):
            initial = [initial] * len(variables)
        else:
            initial = list(initial)
            if len(initial) != len(variables):
                raise ModelConstructionError(
                    "{} initial values are given to {} state variables!"
                    .format(len(initial), len(variables))
                )
        for var, value in zip(variables, initial):
            if value is not None and not var.lb <= value <= var.ub:
                raise ModelConstructionError(
                    "initial value {} of {} is out of its bounds [{}, {}]!"
                    .format(value, var.varName, var.lb, var.ub)
                )
        return initial

    def addStateVars(
            self,
            *indices,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            name="",
            initial=None
    ):
        """
        Add state variables in bulk. Generalize gurobipy.addVars(). Variables
        are added as state variables and the corresponding local copy
        variables will be added behind the scene.

        Parameters
        ----------
        initial: float/array-like, optional, default=None
            The incoming values of the state variables at the first stage.

        Returns
        -------
        (the created state variables, the corresponding local_copy variables): tuple

        Examples
        --------
        >>> now, past = model.addStateVars(2, ub=2.0, initial=[1.0, 0.5])
        """
        if not numpy.all(numpy.array(lb) <= numpy.array(ub)):
            raise ModelConstructionError(
                "lower bound of state variables {} exceeds the upper bound!"
                .format(name)
            )
        state = self._model.addVars(
            *indices, lb=lb, ub=ub, obj=obj, name=name
        )
        local_copy = self._model.addVars(
            *indices, lb=lb, ub=ub, name=name + "_local_copy"
        )
        self._model.update()
        self.initial_values += self._check_initial(initial, state.values())
        self.states += state.values()
        self.local_copies += local_copy.values()
        self.n_states += len(state)
        return state, local_copy

    def addStateVar(
            self,
            lb=0.0,
            ub=gurobipy.GRB.INFINITY,
            obj=0.0,
            name="",
            initial=None
    ):
        """
        Add a state variable and its local copy.

        Returns
        -------
        (the created state variable, the corresponding local_copy variable): tuple

        Examples
        --------
        >>> now, past = model.addStateVar(ub=200, name="volume", initial=200)
        """
        if lb > ub:
            raise ModelConstructionError(
                "lower bound of state variable {} exceeds the upper bound!"
                .format(name)
            )
        state = self._model.addVar(lb=lb, ub=ub, obj=obj, name=name)
        local_copy = self._model.addVar(
            lb=lb, ub=ub, name=name + "_local_copy"
        )
        self._model.update()
        self.initial_values += self._check_initial(initial, [state])
        self.states += [state]
        self.local_copies += [local_copy]
        self.n_states += 1
        return state, local_copy

    def addConstr(self, constr, name="", uncertainty=None):
        """
        Add a constraint. Generalize gurobipy.addConstr() to incorporate
        stage-wise independent discrete uncertainty on the RHS.

        Parameters
        ----------
        uncertainty: dict, optional, default=None
            {'rhs': array-like of samples}

        Examples
        --------
        >>> model.addConstr(x + y == 0, uncertainty={'rhs': [1,2,3]})
        """
        if uncertainty is not None:
            if not isinstance(uncertainty, abc.Mapping):
                raise TypeError("wrong uncertainty format!")
            if len(uncertainty) != 1 or 'rhs' not in uncertainty:
                raise TypeError(
                    "only uncertainty on the RHS of constraints is supported!")
            samples = self._check_uncertainty(uncertainty['rhs'], 1)
        constr = self._model.addConstr(constr, name=name)
        self._model.update()
        if uncertainty is not None:
            self.uncertainty_rhs[constr] = samples
        return constr

    def addConstrs(self, generator, name="", uncertainty=None):
        """
        Add constraints in bulk. Generalize gurobipy.addConstrs() to
        incorporate stage-wise independent discrete uncertainty on the RHS.

        Parameters
        ----------
        uncertainty: array-like, optional, default=None
            The scenarios of the RHS, of shape (n_samples, number of added
            constraints).

        Examples
        --------
        >>> model.addConstrs(
        ...     (x[i] == 0 for i in range(2)),
        ...     uncertainty=[[1,2],[3,4],[5,6]]
        ... )
        """
        constrs = self._model.addConstrs(generator, name=name)
        self._model.update()
        if uncertainty is not None:
            try:
                samples = self._check_uncertainty(
                    uncertainty, len(constrs), multivariate=True)
            except (ValueError, SampleSizeError):
                for constr in constrs.values():
                    self._model.remove(constr)
                self._model.update()
                raise
            self.uncertainty_rhs[tuple(constrs.values())] = samples
        return constrs

    def add_AR1_uncertainty(self, innovations, coefficients=None, name="noise"):
        """
        Add autoregressive right-hand-side noise

            noise_t = coefficients * noise_{t-1} + innovation_t

        The noise variables of the stage are returned to be used in the
        constraints of the stage. The lagged noise noise_{t-1} is carried
        between stages like a state variable.

        Parameters
        ----------
        innovations: array-like
            The scenarios of the innovation, of shape (n_samples, dim) or
            (n_samples,) for univariate noise. In the first stage it is the
            (deterministic) initial value of the noise.

        coefficients: matrix-like, optional, default=None
            The autoregressive coefficients of shape (dim, dimension of the
            noise of the previous stage). None in the first stage.

        Examples
        --------
        >>> inflow = model.add_AR1_uncertainty(
        ...     innovations=[[-1.0], [0.0], [1.0]],
        ...     coefficients=[[0.5]],
        ... )
        >>> model.addConstr(volume_now == volume_past + inflow[0] - release)
        """
        if self.noise_states != []:
            raise ValueError("AR1 uncertainty has already been added!")
        try:
            innovations = numpy.array(innovations, dtype='float64')
        except (TypeError, ValueError):
            raise ValueError("Scenarios must only contains numbers!")
        if innovations.ndim == 1:
            innovations = innovations.reshape(-1, 1)
        if innovations.ndim != 2:
            raise ValueError("innovations must be of shape (n_samples, dim)!")
        dim = innovations.shape[1]
        if coefficients is None:
            coefficients = numpy.zeros((dim, 0))
        else:
            coefficients = numpy.array(coefficients, dtype='float64')
            if coefficients.ndim != 2 or coefficients.shape[0] != dim:
                raise ValueError(
                    "coefficients must be a matrix with {} rows!".format(dim))
        samples = self._check_uncertainty(innovations, dim, multivariate=True)
        noise = list(self._model.addVars(
            dim,
            lb=-gurobipy.GRB.INFINITY,
            ub=gurobipy.GRB.INFINITY,
            name=name,
        ).values())
        noise_past = list(self._model.addVars(
            coefficients.shape[1],
            lb=-gurobipy.GRB.INFINITY,
            ub=gurobipy.GRB.INFINITY,
            name=name + "_past",
        ).values())
        self._model.update()
        constrs = [
            self._model.addConstr(
                noise[i] - gurobipy.LinExpr(coefficients[i].tolist(), noise_past)
                == 0,
                name="{}_AR1[{}]".format(name, i),
            )
            for i in range(dim)
        ]
        self._model.update()
        self.uncertainty_rhs[tuple(constrs)] = samples
        self.noise_states = noise
        self.noise_local_copies = noise_past
        self.n_noise_states = dim
        self.ar_coefficients = coefficients
        return noise

    def set_probability(self, probability):
        """
        Set probability measure of discrete scenarios.

        Parameters
        ----------
        probability: array-like
            Probability of scenarios. Default is uniform measure
            [1/n_samples for _ in range(n_samples)].
            Length of the list must equal length of uncertainty.
            The order of the list must match with the order of
            uncertainty list.

        Examples
        --------
        >>> model.addConstr(x == 0, uncertainty={'rhs': [1,2,3]})
        >>> model.set_probability([0.2,0.3,0.5])
        """
        probability = [float(p) for p in probability]
        if len(probability) != self.n_samples:
            raise ValueError(
                "probability tree != compatible with scenario tree"
            )
        if any(p < 0 for p in probability) or round(sum(probability), 4) != 1:
            raise ValueError("probability must be non-negative and sum to one!")
        self.probability = probability

    def _update_uncertainty(self, k):
        # Update model with the k th stage-wise independent discrete uncertainty
        for constr_tuple, value in self.uncertainty_rhs.items():
            if type(constr_tuple) == tuple:
                self._model.setAttr("RHS", list(constr_tuple), value[k])
            else:
                constr_tuple.setAttr("RHS", value[k])

    def _set_up_link_constrs(self, first_stage=False):
        if self._flag_link:
            return
        if first_stage:
            # the incoming values of the first stage are fixed
            for var, value in zip(self.local_copies, self.initial_values):
                if value is not None:
                    self._model.addConstr(var == value, name="initial_value")
        else:
            self.link_constrs = list(
                self._model.addConstrs(
                    (var == 0 for var in self.local_copies),
                    name="link_constrs",
                ).values()
            )
            self.noise_link_constrs = list(
                self._model.addConstrs(
                    (var == 0 for var in self.noise_local_copies),
                    name="noise_link_constrs",
                ).values()
            )
        self._model.update()
        self._flag_link = 1

    def _set_up_CTG(self, discount, bound):
        # if it's a minimization problem, we need a lower bound for alpha
        if self.alpha is not None:
            return
        if self.modelsense == 1:
            self.alpha = self._model.addVar(
                lb=bound,
                ub=gurobipy.GRB.INFINITY,
                obj=discount,
                name="alpha",
            )
        # if it's a maximation problem, we need an upper bound for alpha
        else:
            self.alpha = self._model.addVar(
                ub=bound,
                lb=-gurobipy.GRB.INFINITY,
                obj=discount,
                name="alpha",
            )
        self._model.update()

    def _update_link_constrs(self, fwdSoln, noiseSoln=None):
        if self.link_constrs:
            self._model.setAttr("RHS", self.link_constrs, list(fwdSoln))
        if self.noise_link_constrs:
            self._model.setAttr("RHS", self.noise_link_constrs, list(noiseSoln))

    def _solve(self, where="", sample=None):
        """Synchronize cuts and solve. Caller must hold the lock."""
        if self.value_function is not None:
            self.value_function.attach()
        self._model.optimize()
        if self._model.status != gurobipy.GRB.OPTIMAL:
            raise SolveError(
                self.stage, self.Markov_state, sample, self._model.status, where
            )

    def _solveLP(self):
        """Solve all the scenarios at the current incoming values. Return the
        objective values and the duals of the link constraints (state links
        followed by lagged-noise links). Caller must hold the lock."""
        link_constrs = self.link_constrs + self.noise_link_constrs
        objLPScen = numpy.empty(self.n_samples)
        gradLPScen = numpy.empty((self.n_samples, len(link_constrs)))
        for k in range(self.n_samples):
            self._update_uncertainty(k)
            self._solve("backward", k)
            objLPScen[k] = self._model.objVal
            gradLPScen[k] = self._model.getAttr("Pi", link_constrs)
        return objLPScen, gradLPScen

    def get_cut_coeffs_and_rhs(self):
        """Get coefficients and rhs of cuts.
        If minimization, cuts take the form of alpha >= ax + by + c,
        If maximization, cuts take the form of alpha <= ax + by + c,
        Returns a dictionary:
            {x.varName: [a1,a2], y.varName: [b1,b2], rhs: [c1,c2]}
        Noise variables are only included if the cuts depend on them.
        """
        if self.value_function is None:
            return {"rhs": []}
        names = [var.varName for var in self.value_function.variables]
        result = {name: [] for name in names}
        result["rhs"] = []
        for cut in self.value_function.cuts:
            for name, coeff in zip(
                    names, cut.coefficients + cut.noise_coefficients):
                result[name].append(coeff)
            result["rhs"].append(cut.intercept)
        return result
