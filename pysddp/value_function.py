#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan

Cutting-plane approximations of the cost-to-go function.

A cut oracle stores the cuts of one (stage, Markov state) pair. A value
function couples a stage model to its cut oracle: it turns the objective
values and dual prices collected in the backward step into a cut and keeps
the cut constraints on the epigraph variable alpha of the stage model in sync
with the oracle.

    minimization: alpha >= intercept + coefficients * x (+ noise_coefficients * noise)
    maximization: alpha <= intercept + coefficients * x (+ noise_coefficients * noise)
"""
import threading
from collections import namedtuple
import numpy
import gurobipy


class Cut(namedtuple(
        'Cut',
        ['stage', 'Markov_state', 'intercept', 'coefficients',
        'noise_coefficients', 'index'])):
    """A supporting hyperplane of the cost-to-go function of (stage,
    Markov_state). index is assigned by the cut oracle."""
    __slots__ = ()

    def value(self, state, noise=None):
        result = self.intercept + numpy.dot(self.coefficients, state)
        if self.noise_coefficients:
            result += numpy.dot(self.noise_coefficients, noise)
        return result


class DefaultCutOracle(object):
    """Append-only store of cuts with optional dominance pruning.

    Parameters
    ----------
    sense: 1/-1
        The optimization sense of the stage model.

    lb, ub: array-like
        Bounds of the variables the cuts are a function of (state variables
        followed by noise variables). A cut is dominated if another cut is at
        least as tight everywhere in this box.

    pruning: bool, optional (default=False)
        Whether to drop dominated cuts upon insertion.

    Inserts are serialized by a lock. Reads (cuts) take a snapshot without
    locking.
    """
    def __init__(self, sense, lb, ub, pruning=False):
        self.sense = sense
        self.lb = self._to_bound(lb)
        self.ub = self._to_bound(ub)
        self.pruning = pruning
        self._cuts = []
        self.n_cuts = 0
        self.n_pruned = 0
        self.version = 0
        self._lock = threading.Lock()

    def __repr__(self):
        return "<DefaultCutOracle, {} cuts, {} pruned>".format(
            len(self._cuts), self.n_pruned)

    def __len__(self):
        return len(self._cuts)

    @staticmethod
    def _to_bound(bound):
        bound = numpy.array(bound, dtype='float64')
        bound[bound >= gurobipy.GRB.INFINITY] = numpy.inf
        bound[bound <= -gurobipy.GRB.INFINITY] = -numpy.inf
        return bound

    @property
    def cuts(self):
        return list(self._cuts)

    def _is_dominated(self, cut, other):
        """Whether cut is dominated by other everywhere in the box."""
        # largest value of sense * (cut - other) over the box
        d0 = self.sense * (cut.intercept - other.intercept)
        d = self.sense * (
            numpy.array(cut.coefficients + cut.noise_coefficients)
            - numpy.array(other.coefficients + other.noise_coefficients)
        )
        d[numpy.abs(d) < 1e-12] = 0.0
        with numpy.errstate(invalid='ignore'):
            worst = numpy.where(
                d > 0, d * self.ub, numpy.where(d < 0, d * self.lb, 0.0))
        return d0 + numpy.sum(worst) <= 1e-9 * (1 + abs(cut.intercept))

    def add_cut(self, cut):
        """Store a cut. Return the stored cut or None if pruned."""
        with self._lock:
            cut = cut._replace(index=self.n_cuts)
            self.n_cuts += 1
            if self.pruning:
                cuts = self._cuts
                if any(self._is_dominated(cut, other) for other in cuts):
                    self.n_pruned += 1
                    return None
                kept = [other for other in cuts
                    if not self._is_dominated(other, cut)]
                if len(kept) != len(cuts):
                    self.n_pruned += len(cuts) - len(kept)
                    kept.append(cut)
                    self._cuts = kept
                else:
                    self._cuts.append(cut)
            else:
                self._cuts.append(cut)
            self.version += 1
        return cut

    def prune(self):
        """Remove every dominated cut. Return the number of removed cuts."""
        with self._lock:
            cuts = self._cuts
            kept = []
            for i, cut in enumerate(cuts):
                # among mutually dominating (identical) cuts keep the last one
                if not any(
                    self._is_dominated(cut, other)
                    and (j > i or not self._is_dominated(other, cut))
                    for j, other in enumerate(cuts) if j != i
                ):
                    kept.append(cut)
            n_removed = len(cuts) - len(kept)
            if n_removed:
                self.n_pruned += n_removed
                self._cuts = kept
                self.version += 1
        return n_removed


def _attach(value_function, cut_expr):
    """Synchronize the cut constraints of the stage model with the oracle."""
    oracle = value_function.oracle
    version = oracle.version
    if version == value_function._version:
        return
    m = value_function.model
    constrs = value_function._constrs
    active = set()
    for cut in oracle.cuts:
        active.add(cut.index)
        if cut.index not in constrs:
            constrs[cut.index] = m._model.addConstr(
                m.modelsense * (m.alpha - cut_expr(cut) - cut.intercept) >= 0,
                name="cut[{}]".format(cut.index),
            )
    for index in [index for index in constrs if index not in active]:
        m._model.remove(constrs.pop(index))
    m._model.update()
    value_function._version = version


class DefaultValueFunction(object):
    """Cost-to-go approximation whose cuts are a function of the state
    variables of the stage model."""
    def __init__(self, model, oracle):
        self.model = model
        self.oracle = oracle
        self._constrs = {}
        self._version = 0

    def __repr__(self):
        return "<DefaultValueFunction, {} cuts>".format(len(self.oracle))

    @property
    def cuts(self):
        return self.oracle.cuts

    @property
    def variables(self):
        """The variables the cuts are a function of."""
        return self.model.states

    def build_cut(self, obj, grad, forward_solution, noise_solution, t, k):
        """Build the cut of stage t Markov state k from the (risk-adjusted)
        cost-to-go value obj and its gradient grad at forward_solution."""
        grad = numpy.array(grad, dtype='float64')
        intercept = obj - numpy.dot(grad, forward_solution)
        return Cut(t, k, float(intercept), tuple(grad.tolist()), (), None)

    def add_cut(self, cut):
        return self.oracle.add_cut(cut)

    def attach(self):
        m = self.model
        _attach(
            self,
            lambda cut: gurobipy.LinExpr(list(cut.coefficients), m.states)
        )

    def current_bound(self):
        return self.model.alpha.X


class RHSAR1ValueFunction(object):
    """Cost-to-go approximation for autoregressive right-hand-side noise.

    The cost-to-go of stage t depends on the state x_t and on the noise
    realized at stage t, since noise_{t+1} = Phi_{t+1} noise_t + innovation.
    The backward step fixes both through link constraints of stage t+1 so the
    gradient splits into coefficients on x_t (duals of the state links) and
    noise_coefficients on noise_t (duals of the lagged-noise links). Inside
    stage t the cuts are attached against the noise variables, which the
    sampled innovation fixes before each solve.
    """
    def __init__(self, model, oracle):
        self.model = model
        self.oracle = oracle
        self._constrs = {}
        self._version = 0

    def __repr__(self):
        return "<RHSAR1ValueFunction, {} cuts>".format(len(self.oracle))

    @property
    def cuts(self):
        return self.oracle.cuts

    @property
    def variables(self):
        return self.model.states + self.model.noise_states

    def build_cut(self, obj, grad, forward_solution, noise_solution, t, k):
        grad = numpy.array(grad, dtype='float64')
        n_states = self.model.n_states
        coefficients, noise_coefficients = grad[:n_states], grad[n_states:]
        intercept = (
            obj
            - numpy.dot(coefficients, forward_solution)
            - numpy.dot(noise_coefficients, noise_solution)
        )
        return Cut(t, k, float(intercept), tuple(coefficients.tolist()),
            tuple(noise_coefficients.tolist()), None)

    def add_cut(self, cut):
        return self.oracle.add_cut(cut)

    def attach(self):
        m = self.model
        _attach(
            self,
            lambda cut: (
                gurobipy.LinExpr(list(cut.coefficients), m.states)
                + gurobipy.LinExpr(list(cut.noise_coefficients), m.noise_states)
            )
        )

    def current_bound(self):
        return self.model.alpha.X
