"""Tests for the job graph engine – runs without a database."""

import pytest

from carehub.jobs.dag import JobGraph, StepStatus


def test_linear_graph_executes_in_order():
    """Steps run in dependency order and results flow downstream."""
    execution_log = []

    def step_a(ctx):
        execution_log.append("a")
        return {"from_a": 1}

    def step_b(ctx):
        execution_log.append("b")
        assert ctx["from_a"] == 1
        return {"from_b": 2}

    def step_c(ctx):
        execution_log.append("c")
        assert ctx["from_b"] == 2

    graph = JobGraph("test_linear")
    graph.add_step("c", step_c, depends_on=["b"])
    graph.add_step("b", step_b, depends_on=["a"])
    graph.add_step("a", step_a)

    result = graph.run()
    assert result["status"] == "completed"
    assert execution_log == ["a", "b", "c"]


def test_failed_step_skips_transitive_dependents():
    def failing(ctx):
        raise RuntimeError("Intentional failure")

    def downstream(ctx):
        pytest.fail("Should not have run")

    graph = JobGraph("test_failure")
    graph.add_step("fail", failing)
    graph.add_step("after", downstream, depends_on=["fail"])
    graph.add_step("after_after", downstream, depends_on=["after"])
    graph.add_step("independent", lambda ctx: {"ran": 1})

    result = graph.run()
    assert result["status"] == "failed"
    assert graph.steps["fail"].status == StepStatus.FAILED
    assert graph.steps["fail"].error == "Intentional failure"
    assert graph.steps["after"].status == StepStatus.SKIPPED
    assert graph.steps["after_after"].status == StepStatus.SKIPPED
    assert graph.steps["independent"].status == StepStatus.SUCCESS
    assert result["tasks"]["after"]["duration_ms"] is None


def test_cycle_detection():
    graph = JobGraph("test_cycle")
    graph.add_step("a", lambda ctx: None, depends_on=["b"])
    graph.add_step("b", lambda ctx: None, depends_on=["a"])

    with pytest.raises(ValueError, match="Cycle detected"):
        graph.run()


def test_unknown_dependency_rejected():
    graph = JobGraph("test_unknown")
    graph.add_step("a", lambda ctx: None, depends_on=["missing"])

    with pytest.raises(ValueError, match="unknown step"):
        graph.execution_order()


def test_duplicate_step_rejected():
    graph = JobGraph("dupes")
    graph.add_step("a", lambda ctx: None)
    with pytest.raises(ValueError, match="Duplicate"):
        graph.add_step("a", lambda ctx: None)


def test_diamond_graph():
    """Diamond shape: A -> B, A -> C, B+C -> D."""
    graph = JobGraph("diamond")
    graph.add_step("a", lambda ctx: {"val": 1})
    graph.add_step("b", lambda ctx: {"b_val": ctx["val"] + 10}, depends_on=["a"])
    graph.add_step("c", lambda ctx: {"c_val": ctx["val"] + 20}, depends_on=["a"])
    graph.add_step(
        "d",
        lambda ctx: {"total": ctx["b_val"] + ctx["c_val"]},
        depends_on=["b", "c"],
    )

    result = graph.run()
    assert result["status"] == "completed"
    assert graph.steps["d"].result["total"] == 32  # 11 + 21
    assert graph.execution_order() == ["a", "b", "c", "d"]


def test_counts_only_report_integers():
    graph = JobGraph("counts")
    graph.add_step("a", lambda ctx: {"expired": 3, "flag": True, "label": "x"})
    graph.run()
    assert graph.counts() == {"expired": 3}


def test_to_dict_serialization():
    graph = JobGraph("serialize_test")
    graph.add_step("x", lambda ctx: None)
    graph.add_step("y", lambda ctx: None, depends_on=["x"])

    d = graph.to_dict()
    assert d["name"] == "serialize_test"
    assert d["steps"]["y"]["depends_on"] == ["x"]
