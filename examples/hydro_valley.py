#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan

A version of the hydro-thermal scheduling problem. The goal is to operate four
hydro-dams in a valley chain over time in the face of inflow and price
uncertainty.

Turbine response curves are modelled by piecewise linear functions which map
the flow rate into a power. Inflows follow a vector autoregressive process of
order one. Prices are governed by a Markov chain; in the third stage the
Markov chain has an unreachable state.

python hydro_valley.py [Max|Min] [AVaR]
"""
from pysddp.msp import MSLP
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.utils.measure import Expectation_AVaR
from functools import partial
import numpy
import sys

sense = -1 if len(sys.argv) < 2 or sys.argv[1] == "Max" else 1
risk_averse = len(sys.argv) > 2 and sys.argv[2] == "AVaR"

T = 3
N = 4
flowknots = [50, 60, 70]
powerknots = [55, 65, 70]
spill_cost = 1000
reservoir_max = 200
reservoir_initial = 200
normNoise = numpy.array([
    [-12.626063, -3.704914, 5.216234],
    [10.734489, 22.298040, 33.861590],
    [-11.599395, 5.652446, 22.904287],
    [-8.867397, 8.238426, 25.344249],
])
autoreg = [
    [0.894155785206891, 0.187191166096471, -0.128736587791406, 0.128227942329335],
    [-0.328397404318301, 0.695183935103107, -0.0913626214178796, 0.0289323912343019],
    [0.585025574269405, 0.531110268093871, -0.113118385105778, -0.16903444953985],
    [0.510092039498543, 0.203814073453963, 0.0196469487416793, 0.150465728201917],
]
# prices[stage][Markov state]
prices = [
    [1, 2, 0],
    [2, 1, 0],
    [3, 4, 0],
]
# a profit in maximization, a cost in minimization
flipobj = 1.0 if sense == -1 else -1.0

HydroValley = MSLP(T=T, sense=sense, bound=flipobj * 1e6)
HydroValley.add_MC_uncertainty(
    transition_matrix=[
        [[1.0]],
        [[0.6,0.4]],
        [[0.6,0.4,0.0],[0.3,0.7,0.0]],
    ]
)

def build(m, t, k):
    reservoir_now, reservoir_past = m.addStateVars(
        N, ub=reservoir_max, name="reservoir", initial=reservoir_initial)
    if t == 0:
        inflow = m.add_AR1_uncertainty(innovations=[[0.0] * N], name="inflow")
    else:
        inflow = m.add_AR1_uncertainty(
            innovations=normNoise.T,
            coefficients=autoreg,
            name="inflow",
        )
    outflow = m.addVars(N, name="outflow")
    spill = m.addVars(N, name="spill")
    pour = m.addVars(N, name="pour")
    generation = m.addVar(name="generation")
    dispatch = m.addVars(N, len(flowknots), ub=1, name="dispatch")
    m.addConstr(
        reservoir_now[0] == reservoir_past[0] + inflow[0] - outflow[0]
        - spill[0] + pour[0]
    )
    m.addConstrs(
        reservoir_now[i] == reservoir_past[i] + inflow[i] - outflow[i]
        - spill[i] + pour[i] + outflow[i-1] + spill[i-1]
        for i in range(1, N)
    )
    m.addConstr(
        generation == sum(
            powerknots[level] * dispatch[i,level]
            for i in range(N) for level in range(len(powerknots))
        )
    )
    m.addConstrs(
        outflow[i] == sum(
            flowknots[level] * dispatch[i,level]
            for level in range(len(flowknots))
        )
        for i in range(N)
    )
    m.addConstrs(
        sum(dispatch[i,level] for level in range(len(flowknots))) <= 1
        for i in range(N)
    )
    m.setObjective(
        flipobj * (
            prices[t][k] * generation
            - sum(spill_cost * (spill[i] + pour[i]) for i in range(N))
        )
    )

HydroValley.construct(build)
if risk_averse:
    HydroValley.set_risk_measure(partial(Expectation_AVaR, a=0.5, l=0.5))
HydroValley_SDDP = SDDP(HydroValley)
HydroValley_SDDP.solve(max_iterations=50, max_stable_iterations=10)
print(HydroValley_SDDP.first_stage_solution)
if not risk_averse:
    evaluation = Evaluation(HydroValley)
    evaluation.run(n_simulations=-1)
    print(evaluation.epv, evaluation.gap)
