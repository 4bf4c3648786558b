#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan
"""
class SampleSizeError(Exception):
    """Exception class to raise if uncertainty of different sample sizes are
    added to the model."""
    def __init__(self, modelName, dimensionality, uncertainty, dimension):
        Exception.__init__(
            self,
            "Dimensionality of stochasticModel {} is {} "
            "but dimension of the uncertainty {} is {}".format(
                modelName, dimensionality, uncertainty, dimension
            ),
        )


class ModelConstructionError(ValueError):
    """Exception class to raise if the policy graph or one of its stage
    models is malformed (transition matrix, state bounds, dimensions)."""


class SolveError(Exception):
    """Exception class to raise if a subproblem is not solved to optimality.

    Attributes
    ----------
    stage: int
        The stage of the subproblem.

    Markov_state: int
        The Markov state of the subproblem.

    sample: int or None
        The index of the noise realization being solved.

    status: int
        The Gurobi status code.
    """
    STATUS = {
        3: "infeasible",
        4: "infeasible or unbounded",
        5: "unbounded",
        12: "numerical trouble",
    }

    def __init__(self, stage, Markov_state, sample, status, where=""):
        self.stage = stage
        self.Markov_state = Markov_state
        self.sample = sample
        self.status = status
        Exception.__init__(
            self,
            "{}subproblem at stage {}, Markov state {}, sample {} is {} "
            "(status {}); check complete recourse condition!".format(
                where + " " if where else "",
                stage,
                Markov_state,
                sample,
                self.STATUS.get(status, "not optimal"),
                status,
            ),
        )


class ConvergenceWarning(UserWarning):
    """Warning issued when SDDP stops before the stopping rule is met."""
