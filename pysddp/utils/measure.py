#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan

Risk measures. Every measure takes the objective values obj (n_samples),
the gradients grad (n_samples * n_states), the probability p (None means
uniform) and the optimization sense (1 for minimization, -1 for maximization)
and returns a single objective value and gradient.

Each measure is computed as a reweighting of the outcomes by risk-adjusted
probabilities, which are non-negative and sum to one, so the resulting cut
stays a valid bound of the risk-adjusted cost-to-go function.
"""
import numpy


def _probability(obj, p):
    if p is None:
        return numpy.ones(len(obj)) / len(obj)
    return numpy.array(p, dtype='float64')

def _AVaR_probability(obj, p, a, sense):
    """Risk-adjusted probability of average value at risk: the worst outcomes
    are inflated by 1/a until one unit of probability is spent."""
    q = numpy.zeros(len(obj))
    remaining = 1.0
    # worst outcomes first; a high cost is bad for minimization
    for index in numpy.argsort(-sense * numpy.array(obj), kind='stable'):
        if remaining <= 0:
            break
        q[index] = min(p[index] / a, remaining)
        remaining -= q[index]
    return q

def Expectation(obj, grad, p, sense):
    p = _probability(obj, p)
    return (numpy.dot(p, obj), numpy.dot(p, grad))

def WorstCase(obj, grad, p, sense):
    p = _probability(obj, p)
    obj = numpy.array(obj, dtype='float64')
    # outcomes with zero probability can never be the worst case
    candidates = numpy.where(p > 0, sense * obj, -numpy.inf)
    index = numpy.argmax(candidates)
    return (obj[index], numpy.array(grad)[index])

def AVaR(obj, grad, p, sense, a):
    """Average value at risk (conditional value at risk) at level a.

    a=1 gives the expectation, a close to 0 approaches the worst case.
    """
    if not 0 < a <= 1:
        raise ValueError("a must be in (0,1]!")
    p = _probability(obj, p)
    q = _AVaR_probability(obj, p, a, sense)
    return (numpy.dot(q, obj), numpy.dot(q, grad))

def Expectation_AVaR(obj, grad, p, sense, a, l):
    """(1-l) * Expectation + l * AVaR_a"""
    if not 0 <= l <= 1:
        raise ValueError("l must be between 0 and 1!")
    if not 0 < a <= 1:
        raise ValueError("a must be in (0,1]!")
    p = _probability(obj, p)
    q = (1 - l) * p + l * _AVaR_probability(obj, p, a, sense)
    return (numpy.dot(q, obj), numpy.dot(q, grad))
