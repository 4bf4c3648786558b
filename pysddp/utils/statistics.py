#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan
"""
import numpy
from scipy import stats
import numbers
from pysddp.utils.exception import ModelConstructionError


def compute_CI(array, percentile):
    """Compute percentile% CI for the given array."""
    if len(array) == 1:
        raise NotImplementedError
    mean = numpy.mean(array)
    # standard error
    se = numpy.std(array, ddof=1) / numpy.sqrt(len(array))
    # critical value
    cv = stats.t.ppf(1 - (1-percentile/100)/2, len(array)-1)
    return mean - cv * se, mean + cv * se

def rand_int(k, random_state, probability=None, size=None, replace=None):
    """Randomly generate certain numbers of sample from range(k) with given
    probability with/without replacement"""
    if probability is None and replace is None:
        return random_state.randint(low=0, high=k, size=size)
    else:
        return random_state.choice(a=k, p=probability, size=size, replace=replace)

def check_random_state(seed):
    """Turn the seed into a RandomState instance.

    Parameters & Returns
    --------------------
    seed : None, numpy.random, int, instance of RandomState
        If None, return numpy.random.
        If int, return a new RandomState instance with seed.
        Otherwise raise ValueError.
    """
    if seed is None or seed is numpy.random:
        return numpy.random.mtrand._rand
    if isinstance(seed, (numbers.Integral, numpy.integer)):
        return numpy.random.RandomState(seed)
    if isinstance(seed, numpy.random.RandomState):
        return seed
    raise ValueError(
        "{!r} cannot be used to seed a numpy.random.RandomState instance"
            .format(seed)
    )

def check_transition_matrix(transition_matrix, T):
    """Check the transition matrices are in the right form. Return the number
    of Markov states and the reachability of every Markov state.

    A Markov state is reachable if it can be visited with positive
    probability. Rows of reachable Markov states must sum to one; all-zero
    rows are only allowed for unreachable Markov states.
    """
    if len(transition_matrix) != T:
        raise ModelConstructionError(
            "The transition_matrix is of length {}, expecting of length {}!"
            .format(len(transition_matrix), T)
        )
    n_Markov_states = []
    reachable = []
    a = 1
    for t, item in enumerate(transition_matrix):
        try:
            item = numpy.array(item, dtype='float64')
        except (TypeError, ValueError):
            raise ModelConstructionError(
                "Transition matrix of stage {} must only contain numbers!"
                .format(t)
            )
        if item.ndim != 2 or item.shape[0] != a:
            raise ModelConstructionError(
                "Transition matrix of stage {} must have {} rows!"
                .format(t, a)
            )
        if numpy.any(item < 0) or numpy.any(item > 1):
            raise ModelConstructionError(
                "Transition probabilities of stage {} must be between 0 and 1!"
                .format(t)
            )
        if t == 0:
            if item.shape[1] != 1:
                raise ModelConstructionError("First stage must be deterministic!")
            reach = numpy.array([True])
        else:
            for j, row in enumerate(item):
                total = round(sum(row), 4)
                if reachable[t-1][j] and total != 1:
                    raise ModelConstructionError(
                        "Probability of Markov state {} at stage {} does not "
                        "sum to one!".format(j, t-1)
                    )
                if not reachable[t-1][j] and total not in [0, 1]:
                    raise ModelConstructionError(
                        "Probability of Markov state {} at stage {} does not "
                        "sum to zero or one!".format(j, t-1)
                    )
            reach = numpy.dot(reachable[t-1], item) > 0
        a = item.shape[1]
        n_Markov_states.append(a)
        reachable.append(reach)
    return n_Markov_states, reachable

def allocate_jobs(n_forward_samples, n_processes):
    """Split range(n_forward_samples) into n_processes consecutive chunks."""
    if n_forward_samples - n_processes == 1:
        return [[i] for i in range(n_processes-1)] + [range(n_processes-1,n_forward_samples)]
    chunk = (
        int(n_forward_samples / n_processes)
        if n_forward_samples % n_processes == 0
        else int(n_forward_samples / n_processes) + 1
    )
    division = list(range(0, n_forward_samples, chunk))
    division.append(n_forward_samples)
    return [range(division[p], division[p + 1]) for p in range(len(division)-1)]
