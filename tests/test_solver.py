from pysddp.utils.examples import (construct_nvid, construct_nvida,
    construct_nvmc, construct_nvmcu, construct_two_stage,
    construct_two_outcomes, construct_lp, construct_hydro)
from pysddp.solver import SDDP
from pysddp.evaluation import Evaluation
from pysddp.msp import MSLP
from pysddp.utils.exception import SolveError, ConvergenceWarning
import numpy
import pandas
import pytest


def Q_nvid(x):
    """Expected second stage revenue of nvid at x bought."""
    return numpy.mean([
        2 * min(x, d) + 0.5 * max(x - d, 0) for d in range(11)
    ])


def Q_hydro(volume, inflow):
    """Expected second stage cost of the two-stage hydro problem given the
    volume stored and the inflow realized in the first stage."""
    return numpy.mean([
        6 * max(8 - volume - 0.5 * inflow - e, 0) for e in range(3)
    ])


class TestSDDP(object):

    def initialize(self):
        self.nvid = construct_nvid()
        self.nvida = construct_nvida()
        self.nvmc = construct_nvmc()

    def test_stopping1(self):
        self.initialize()
        with pytest.warns(ConvergenceWarning):
            status = SDDP(self.nvid).solve(max_iterations=10)
        assert status == "iteration_limit"
        with pytest.warns(ConvergenceWarning):
            status = SDDP(self.nvmc).solve(
                n_processes=3,
                n_steps=3,
                max_iterations=10
            )
        assert status == "iteration_limit"

    def test_stopping2(self):
        self.initialize()
        solver = SDDP(self.nvid)
        status = solver.solve(
            max_iterations=100,
            freq_evaluations=1,
            n_simulations=-1,
            tol=1e-4
        )
        assert status == "converged"
        assert solver.db[-1] == pytest.approx(35/11, abs=1e-4)
        assert solver.first_stage_solution['bought'] == pytest.approx(7)

    def test_stopping3(self):
        self.initialize()
        with pytest.warns(ConvergenceWarning):
            status = SDDP(self.nvida).solve(
                max_time=0,
            )
        assert status == "time_limit"

    def test_stable_bound(self):
        status = SDDP(construct_lp()).solve(max_stable_iterations=2)
        assert status == "converged"

    def test_single_stage(self):
        solver = SDDP(construct_lp())
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=1)
        assert solver.db == [pytest.approx(4)]
        assert solver.pv[0] == [pytest.approx(4)]

    def test_two_stage(self):
        MSP = construct_two_stage()
        solver = SDDP(MSP)
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=1)
        assert solver.db[0] == pytest.approx(15)
        assert MSP.db == pytest.approx(15)

    def test_expectation_cut(self):
        MSP = construct_two_outcomes()
        solver = SDDP(MSP)
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=1)
        cuts = MSP[0].value_function.cuts
        assert len(cuts) == 1
        x = solver.first_stage_solution['x']
        assert cuts[0].value([x]) == pytest.approx(5)
        assert solver.db[0] == pytest.approx(5)

    def test_cut_validity(self):
        MSP = construct_nvid()
        with pytest.warns(ConvergenceWarning):
            SDDP(MSP).solve(max_iterations=10, random_state=0)
        # maximization: cuts never underestimate the cost-to-go function
        for cut in MSP[0].value_function.cuts:
            for x in numpy.linspace(0, 20, 81):
                assert cut.value([x]) >= Q_nvid(x) - 1e-6

    def test_AR1_cut_validity(self):
        for seed in range(3):
            MSP = construct_hydro(T=2)
            with pytest.warns(ConvergenceWarning):
                SDDP(MSP).solve(max_iterations=5, random_state=seed)
            cuts = MSP[0].value_function.cuts
            assert len(cuts) > 0
            assert all(len(cut.noise_coefficients) == 1 for cut in cuts)
            # minimization: cuts never overestimate the cost-to-go function
            for cut in cuts:
                for x in numpy.linspace(0, 20, 41):
                    for n in numpy.linspace(0, 10, 21):
                        assert cut.value([x], [n]) <= Q_hydro(x, n) + 1e-6

    def test_monotone_bound(self):
        for seed in range(5):
            MSP = construct_nvmc()
            solver = SDDP(MSP)
            with pytest.warns(ConvergenceWarning):
                solver.solve(max_iterations=10, random_state=seed)
            # maximization: non-increasing
            assert all(numpy.diff(solver.db) <= 1e-6)
            MSP = construct_hydro()
            solver = SDDP(MSP)
            with pytest.warns(ConvergenceWarning):
                solver.solve(
                    n_processes=2, n_steps=2, max_iterations=10,
                    random_state=seed)
            # minimization: non-decreasing
            assert all(numpy.diff(solver.db) >= -1e-6)

    def test_threads(self):
        MSP = construct_nvmc()
        solver = SDDP(MSP)
        with pytest.warns(ConvergenceWarning):
            solver.solve(n_processes=3, n_steps=3, max_iterations=5)
        bounds = solver.bounds
        assert len(bounds) == 5
        assert list(bounds.columns) == [0, 1, 2, 'db']

    def test_resume(self):
        MSP = construct_nvmc()
        solver = SDDP(MSP)
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=3, random_state=0)
        n_cuts = len(MSP[0].value_function.cuts)
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=2, random_state=1)
        assert solver.iteration == 5
        assert len(solver.db) == 5
        assert len(MSP[0].value_function.cuts) == n_cuts + 2
        assert all(numpy.diff(solver.db) <= 1e-6)

    def test_stop(self):
        solver = SDDP(construct_nvid())
        compute_bound = solver._compute_bound
        def stop_after_bound():
            solver.stop()
            return compute_bound()
        solver._compute_bound = stop_after_bound
        with pytest.warns(ConvergenceWarning):
            status = solver.solve(max_iterations=10)
        assert status == "interrupted"
        assert solver.iteration == 1

    def test_unreachable(self):
        MSP = construct_nvmcu()
        solver = SDDP(MSP)
        random_state = numpy.random.RandomState(0)
        MSP._update()
        for _ in range(100):
            forward = solver._forward(random_state)
            assert forward['Markov_state_path'][1] == 0
        with pytest.warns(ConvergenceWarning):
            solver.solve(max_iterations=5)
        assert MSP[1][1].NumConstrs == 1

    def test_infeasible(self):
        MSP = MSLP(T=2, bound=0)
        x, _ = MSP[0].addStateVar(ub=1, name='x')
        _, x_past = MSP[1].addStateVar(ub=1, name='x')
        y = MSP[1].addVar(ub=1, name='y')
        MSP[1].addConstr(y == 0, uncertainty={'rhs': [0, 5]})
        with pytest.raises(SolveError) as e:
            SDDP(MSP).solve(max_iterations=10, random_state=0)
        assert e.value.stage == 1
        assert e.value.Markov_state == 0
        assert e.value.sample == 1


class TestEvaluation(object):

    def test_evaluation(self):
        MSP = construct_nvid()
        SDDP(MSP).solve(
            max_iterations=100,
            freq_evaluations=1,
            n_simulations=-1,
            tol=1e-4,
        )
        evaluation = Evaluation(MSP)
        evaluation.run(n_simulations=-1)
        assert evaluation.n_sample_paths == 11
        assert evaluation.epv == pytest.approx(35/11, abs=1e-4)
        evaluation.run(n_simulations=1000, random_state=0, n_processes=3)
        assert len(evaluation.pv) == 1000
        assert (
            evaluation.CI[0] <= numpy.mean(evaluation.pv) <= evaluation.CI[1])
        evaluation.run(n_simulations=1, random_state=0)
        assert evaluation.CI is None
        assert len(evaluation.pv) == 1

    def test_evaluation_bound(self):
        # the expected policy value never beats the bound
        MSP = construct_hydro()
        with pytest.warns(ConvergenceWarning):
            SDDP(MSP).solve(max_iterations=10, random_state=0)
        evaluation = Evaluation(MSP)
        evaluation.run(n_simulations=-1, n_processes=2)
        assert evaluation.n_sample_paths == 9
        assert evaluation.epv >= MSP.db - 1e-6
        assert evaluation.gap >= 0

    def test_risk_averse(self):
        MSP = construct_nvida()
        with pytest.warns(ConvergenceWarning):
            SDDP(MSP).solve(max_iterations=10)
        evaluation = Evaluation(MSP)
        evaluation.run(n_simulations=100, random_state=0)
        assert evaluation.gap == -1

    def test_cuts_csv(self, tmp_path):
        MSP = construct_nvmc()
        with pytest.warns(ConvergenceWarning):
            SDDP(MSP).solve(max_iterations=5, random_state=0)
        path = str(tmp_path) + "/"
        MSP.write_cuts(
            path,
            name="nvmc",
            author="lingquan",
            description="newsvendor, Markov chain demand",
        )
        copy = construct_nvmc()
        info = copy.read_cuts(path)
        assert info == {
            "name": "nvmc",
            "author": "lingquan",
            "description": "newsvendor, Markov chain demand",
        }
        assert copy.cuts_info == info
        for t in range(2):
            for k in range(copy.n_Markov_states[t]):
                assert (
                    len(copy.models[t][k].value_function.cuts)
                    == len(MSP.models[t][k].value_function.cuts)
                )
        solver = SDDP(copy)
        assert solver._compute_bound() == pytest.approx(MSP.db)

    def test_cuts_csv_noise(self, tmp_path):
        for lagged in [True, False]:
            MSP = construct_hydro(T=2, lagged=lagged)
            with pytest.warns(ConvergenceWarning):
                SDDP(MSP).solve(max_iterations=5, random_state=0)
            path = str(tmp_path) + "/{}_".format(lagged)
            MSP.write_cuts(path)
            columns = list(
                pandas.read_csv(path + "0_0.csv", index_col=0).columns)
            if lagged:
                assert columns == ["volume", "inflow[0]", "rhs"]
            else:
                assert columns == ["volume", "rhs"]
                assert MSP.db <= 2 + 1e-6
            copy = construct_hydro(T=2, lagged=lagged)
            assert copy.read_cuts(path) == {
                "name": "", "author": "", "description": ""}
            cut = copy[0].value_function.cuts[-1]
            assert cut.value([7.0], [5.0]) == pytest.approx(
                MSP[0].value_function.cuts[-1].value([7.0], [5.0]))
            solver = SDDP(copy)
            assert solver._compute_bound() == pytest.approx(MSP.db)
