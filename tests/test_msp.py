#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan
"""
from pysddp.msp import MSLP
from pysddp.value_function import DefaultValueFunction, RHSAR1ValueFunction
from pysddp.utils.exception import ModelConstructionError
from pysddp.utils.examples import (construct_nvmcu, construct_hydro,
    construct_two_stage)
import numpy
import pytest

transition_matrix = [
    [[1]],
    [[0.4,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
invalid_transition_matrix = [None]*5
# first stage is not deterministic
invalid_transition_matrix[0] = [
    [[0.4,0.6]],
    [[0.4,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
# row does not sum to one
invalid_transition_matrix[1] = [
    [[1]],
    [[0.3,0.6]],
    [[0.2,0.8],[0.3,0.7]]
]
# too many rows
invalid_transition_matrix[2] = [
    [[1]],
    [[0.4,0.6]],
    [[0.2,0.8],[0.3,0.7],[0.4,0.6]]
]
# all-zero row of a reachable Markov state
invalid_transition_matrix[3] = [
    [[1]],
    [[0.5,0.5]],
    [[1,0],[0,0]]
]
# wrong number of stages
invalid_transition_matrix[4] = [
    [[1]],
    [[0.5,0.5]],
]


class TestMCMSLP(object):

    def test_MC_uncertainty(self):
        for i in range(5):
            MSP = MSLP(T=3)
            with pytest.raises(ModelConstructionError):
                MSP.add_MC_uncertainty(invalid_transition_matrix[i])
        MSP = MSLP(T=3)
        MSP.add_MC_uncertainty(transition_matrix)
        assert MSP.n_Markov_states == [1, 2, 2]
        assert len(MSP[1]) == 2
        with pytest.raises(ValueError):
            MSP.add_MC_uncertainty(transition_matrix)

    def test_MC_uncertainty_after_construction(self):
        MSP = MSLP(T=3)
        MSP[0].addStateVar()
        with pytest.raises(ValueError):
            MSP.add_MC_uncertainty(transition_matrix)

    def test_construct(self):
        MSP = MSLP(T=3)
        MSP.add_MC_uncertainty(transition_matrix)
        visited = []
        def build(m, t, k):
            visited.append((t, k))
            m.addStateVar(ub=1)
        assert MSP.construct(build) is MSP
        assert visited == [(0, 0), (1, 0), (1, 1), (2, 0), (2, 1)]
        MSP._update()
        assert isinstance(MSP[0].value_function, DefaultValueFunction)
        assert MSP[2][0].value_function is None

    def test_unreachable_Markov_state(self):
        MSP = construct_nvmcu()
        assert list(MSP.reachable[1]) == [True, False]
        assert list(MSP.reachable[2]) == [True, True]
        random_state = numpy.random.RandomState(0)
        samples = [
            MSP._sample_Markov_state(1, 0, random_state)
            for _ in range(10000)
        ]
        assert samples.count(1) == 0
        MSP._update()
        # unreachable Markov states get no cost-to-go function
        assert MSP[1][1].value_function is None
        assert MSP[1][0].value_function is not None

    def test_enumerate_sample_paths(self):
        MSP = construct_nvmcu()
        n_sample_paths, sample_paths = MSP._enumerate_sample_paths()
        # 2 samples in stage 1, 2 Markov states * 2 samples in stage 2
        assert n_sample_paths == 8
        assert all(sample_path[1][0] == 0 for sample_path in sample_paths)
        weights = [
            MSP._compute_weight_sample_path(sample_path)
            for sample_path in sample_paths
        ]
        assert sum(weights) == pytest.approx(1)


class TestMSLP(object):

    def test_arguments(self):
        with pytest.raises(ModelConstructionError):
            MSLP(T=0)
        with pytest.raises(ModelConstructionError):
            MSLP(T=2, discount=0)
        with pytest.raises(ModelConstructionError):
            MSLP(T=2, sense=0)
        assert MSLP(T=2).bound == -1000000000
        assert MSLP(T=2, sense=-1).bound == 1000000000

    def test_first_stage_deterministic(self):
        MSP = MSLP(T=2)
        x, _ = MSP[0].addStateVar()
        MSP[0].addConstr(x == 0, uncertainty={'rhs': [1, 2]})
        MSP[1].addStateVar()
        with pytest.raises(ModelConstructionError):
            MSP._update()

    def test_state_dimension(self):
        MSP = MSLP(T=2)
        MSP[0].addStateVars(2)
        MSP[1].addStateVar()
        with pytest.raises(ModelConstructionError):
            MSP._update()

    def test_missing_state(self):
        MSP = MSLP(T=2)
        MSP[0].addVar()
        with pytest.raises(ModelConstructionError):
            MSP._update()

    def test_noise_dimension(self):
        MSP = MSLP(T=2)
        MSP[0].addStateVar()
        MSP[0].add_AR1_uncertainty(innovations=[[1.0, 2.0]])
        MSP[1].addStateVar()
        MSP[1].add_AR1_uncertainty(
            innovations=[[1.0], [2.0]], coefficients=[[0.5]])
        with pytest.raises(ModelConstructionError):
            MSP._update()

    def test_mixed_lagged_noise(self):
        MSP = MSLP(T=2)
        MSP.add_MC_uncertainty([[[1]], [[0.5, 0.5]]])
        def build(m, t, k):
            m.addStateVar(ub=1)
            if t == 0:
                m.add_AR1_uncertainty(innovations=[[1.0]])
            elif k == 0:
                m.add_AR1_uncertainty(
                    innovations=[[1.0], [2.0]], coefficients=[[0.5]])
            else:
                m.add_AR1_uncertainty(innovations=[[1.0], [2.0]])
        MSP.construct(build)
        with pytest.raises(ModelConstructionError):
            MSP._update()

    def test_value_function_variant(self):
        MSP = construct_hydro()
        MSP._update()
        assert isinstance(MSP[0].value_function, RHSAR1ValueFunction)
        assert isinstance(MSP[1].value_function, RHSAR1ValueFunction)
        MSP = construct_two_stage()
        MSP._update()
        assert isinstance(MSP[0].value_function, DefaultValueFunction)
        MSP = construct_hydro(T=2, lagged=False)
        MSP._update()
        assert isinstance(MSP[0].value_function, DefaultValueFunction)

    def test_set_AVaR(self):
        MSP = MSLP(T=3)
        with pytest.raises(ValueError):
            MSP.set_AVaR(l=[0.5], a=0.1)
        with pytest.raises(ValueError):
            MSP.set_AVaR(l=2, a=0.1)
        with pytest.raises(ValueError):
            MSP.set_AVaR(l=0.5, a=0)
        with pytest.raises(TypeError):
            MSP.set_AVaR(l=None, a=0.1)
        MSP.set_AVaR(l=0.5, a=[0.1, 0.2])
        assert MSP.measure == 'risk averse'
        assert MSP.measures[2].keywords == {'a': 0.2, 'l': 0.5}
        with pytest.raises(ValueError):
            MSP.set_risk_measure(MSP.measures[1], stages=[0])
