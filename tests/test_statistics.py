#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan
"""
from pysddp.utils.statistics import (compute_CI, rand_int, check_random_state,
    check_transition_matrix, allocate_jobs)
from pysddp.utils.exception import ModelConstructionError
import numpy
import pytest


class TestStatistics(object):

    def test_compute_CI(self):
        lb, ub = compute_CI([1, 2, 3, 4, 5], 95)
        assert lb < 3 < ub
        assert 3 - lb == pytest.approx(ub - 3)
        with pytest.raises(NotImplementedError):
            compute_CI([1], 95)

    def test_rand_int(self):
        random_state = numpy.random.RandomState(0)
        samples = [
            rand_int(k=3, probability=[0, 0.5, 0.5], random_state=random_state)
            for _ in range(1000)
        ]
        assert 0 not in samples
        assert 0 <= rand_int(k=3, random_state=random_state) < 3

    def test_check_random_state(self):
        assert isinstance(check_random_state(1), numpy.random.RandomState)
        random_state = numpy.random.RandomState(1)
        assert check_random_state(random_state) is random_state
        with pytest.raises(ValueError):
            check_random_state('a')

    def test_check_transition_matrix(self):
        n_Markov_states, reachable = check_transition_matrix(
            [[[1]], [[1, 0, 0]], [[0.5, 0.5], [0, 0], [0.2, 0.8]]], 3)
        assert n_Markov_states == [1, 3, 2]
        assert list(reachable[1]) == [True, False, False]
        assert list(reachable[2]) == [True, True]
        with pytest.raises(ModelConstructionError):
            check_transition_matrix([[[1]], [[1.5, -0.5]]], 2)
        with pytest.raises(ModelConstructionError):
            check_transition_matrix([[[1]], [['a', 'b']]], 2)

    def test_allocate_jobs(self):
        jobs = allocate_jobs(10, 3)
        assert [list(job) for job in jobs] == [
            [0, 1, 2, 3], [4, 5, 6, 7], [8, 9]]
        jobs = allocate_jobs(3, 2)
        assert [list(job) for job in jobs] == [[0], [1, 2]]
        jobs = allocate_jobs(4, 3)
        assert sum(len(job) for job in jobs) == 4
