#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
@author: lingquan

The Asset Management problem taken from

    Gassmann, H., and Kristjansson, B. (2007). The SMPS Format Explained. IMA
    Journal of Management Mathematics, 19(4), 347-377.

55 units of wealth are invested in stocks and bonds. The returns depend on a
Markov chain. Wealth above 80 at the end earns 1 per unit, a shortage costs 4
per unit.
"""
from pysddp.msp import MSLP
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation

rstock = [1.25, 1.06]
rbonds = [1.14, 1.12]

AssetManagement = MSLP(T=4, bound=-1000.0)
AssetManagement.add_MC_uncertainty(
    transition_matrix=[
        [[1.0]],
        [[0.5,0.5]],
        [[0.5,0.5],[0.5,0.5]],
        [[0.5,0.5],[0.5,0.5]],
    ]
)

def build(m, t, k):
    stock_now, stock_past = m.addStateVar(name="stock", initial=0)
    bonds_now, bonds_past = m.addStateVar(name="bonds", initial=0)
    if t == 0:
        m.addConstr(stock_now + bonds_now == 55)
    elif t < 3:
        m.addConstr(
            rstock[k] * stock_past + rbonds[k] * bonds_past
            == stock_now + bonds_now
        )
    else:
        over = m.addVar(obj=-1, name="over")
        short = m.addVar(obj=4, name="short")
        m.addConstr(
            rstock[k] * stock_past + rbonds[k] * bonds_past - over + short
            == 80
        )

AssetManagement.construct(build)
SDDP(AssetManagement).solve(max_iterations=25, random_state=111)
evaluation = Evaluation(AssetManagement)
evaluation.run(n_simulations=-1)
print(evaluation.epv, AssetManagement.db)
AssetManagement.write_cuts(
    "./asset_management_",
    name="asset management",
    author="Oscar Dowson",
    description="The Asset Management problem taken from Gassmann, H., and "
    "Kristjansson, B. (2007). The SMPS Format Explained. IMA Journal of "
    "Management Mathematics, 19(4), 347-377.",
)
