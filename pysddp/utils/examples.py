# Stage-wise independent finite discrete problem
def construct_nvid():
    from pysddp.msp import MSLP
    nvid = MSLP(T=2, sense=-1, bound=20)
    for t in range(2):
        m = nvid[t]
        if t == 0:
            buy_now, _ = m.addStateVar(name='bought', obj=-1.0)
        else:
            _, buy_past = m.addStateVar(name='bought')
            sold = m.addVar(name='sold', obj=2)
            unsatisfied = m.addVar(name='unsatisfied')
            recycled = m.addVar(name='recycled', obj=0.5)
            m.addConstr(sold + unsatisfied == 0,
                uncertainty={'rhs':range(11)})
            m.addConstr(sold + recycled == buy_past)
    return nvid

# Stage-wise independent finite discrete risk averse problem
def construct_nvida():
    nvida = construct_nvid()
    nvida.set_AVaR(l=0.5, a=0.1)
    return nvida

# Markov chain problem, the demand level depends on the Markov state
def construct_nvmc():
    from pysddp.msp import MSLP
    nvmc = MSLP(T=3, sense=-1, bound=100)
    nvmc.add_MC_uncertainty(
        transition_matrix=[
            [[1]],
            [[0.5,0.5]],
            [[0.3,0.7],[0.7,0.3]]
        ]
    )
    level = [[0], [4, 6], [4, 6]]
    def build(m, t, k):
        buy_now, buy_past = m.addStateVar(name='bought', obj=-1.0)
        if t != 0:
            sold = m.addVar(name='sold', obj=2)
            unsatisfied = m.addVar(name='unsatisfied')
            recycled = m.addVar(name='recycled', obj=0.5)
            m.addConstr(sold + unsatisfied == 0,
                uncertainty={'rhs':[level[t][k]-2, level[t][k]+2]})
            m.addConstr(sold + recycled == buy_past)
    return nvmc.construct(build)

# Markov chain problem with an unreachable Markov state
def construct_nvmcu():
    from pysddp.msp import MSLP
    nvmcu = MSLP(T=3, bound=0)
    nvmcu.add_MC_uncertainty(
        transition_matrix=[
            [[1]],
            [[1,0]],
            [[0.5,0.5],[0,0]]
        ]
    )
    def build(m, t, k):
        stock_now, stock_past = m.addStateVar(ub=10, name='stock', initial=0)
        buy = m.addVar(name='buy', obj=[1.0, 3.0][k])
        shortage = m.addVar(name='shortage', obj=10)
        m.addConstr(stock_past + buy + shortage - stock_now == 0,
            uncertainty={'rhs':[0, 2]} if t != 0 else None)
    return nvmcu.construct(build)

# Two-stage problem, the first stage costs 10 and the second stage costs 5
def construct_two_stage():
    from pysddp.msp import MSLP
    two_stage = MSLP(T=2, bound=0)
    m = two_stage[0]
    x_now, _ = m.addStateVar(lb=1, ub=1, obj=10, name='x')
    m = two_stage[1]
    _, x_past = m.addStateVar(lb=1, ub=1, name='x')
    y = m.addVar(name='y', obj=1)
    m.addConstr(y == 5)
    return two_stage

# Two-stage problem, two equiprobable second stage costs 0 and 10
def construct_two_outcomes():
    from pysddp.msp import MSLP
    two_outcomes = MSLP(T=2, bound=0)
    m = two_outcomes[0]
    x_now, _ = m.addStateVar(lb=0.5, ub=0.5, name='x')
    m = two_outcomes[1]
    _, x_past = m.addStateVar(ub=1, name='x')
    y = m.addVar(name='y', obj=1)
    m.addConstr(y == 0, uncertainty={'rhs':[0, 10]})
    return two_outcomes

# Single stage problem, an LP
def construct_lp():
    from pysddp.msp import MSLP
    lp = MSLP(T=1)
    m = lp[0]
    x = m.addVar(ub=2, name='x', obj=1)
    y = m.addVar(name='y', obj=2)
    m.addConstr(x + y >= 3)
    return lp

# Hydro problem with AR1 inflow. If not lagged, the inflow after the first
# stage is stage-wise independent.
def construct_hydro(T=3, lagged=True):
    from pysddp.msp import MSLP
    hydro = MSLP(T=T, bound=0)
    def build(m, t, k):
        volume_now, volume_past = m.addStateVar(
            ub=20, name='volume', initial=10)
        if t == 0:
            inflow = m.add_AR1_uncertainty(innovations=[[5.0]], name='inflow')
        else:
            inflow = m.add_AR1_uncertainty(
                innovations=[[0.0],[1.0],[2.0]],
                coefficients=[[0.5]] if lagged else None,
                name='inflow',
            )
        release = m.addVar(name='release')
        spill = m.addVar(name='spill')
        thermal = m.addVar(name='thermal', obj=5.0 + t)
        m.addConstr(
            volume_now == volume_past + inflow[0] - release - spill)
        m.addConstr(release + thermal >= 8)
    return hydro.construct(build)
