"""Behavioural tests for per-host convergence."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from hc_controller.engine.convergence import ConvergenceEngine
from hc_controller.engine.executor import ModuleExecutor
from hc_controller.engine.plan_builder import TaskGraphBuilder
from hc_controller.models.outcome import NO_LOG_MESSAGE, Outcome
from hc_controller.models.plan import ExecutionPlan, HandlerSpec, TaskSpec
from hc_controller.models.state import HostState
from hc_controller.stop_token import StopToken
from tests.helpers.fakes import KvGatherer, KvHosts, make_host, make_registry


pytestmark = pytest.mark.unit_controller


def _plan(
    tasks: List[Dict[str, Any]],
    handlers: List[Dict[str, Any]] = (),
    variables: Optional[Dict[str, Any]] = None,
) -> ExecutionPlan:
    return TaskGraphBuilder(make_registry()).build(
        [TaskSpec.model_validate(task) for task in tasks],
        [HandlerSpec.model_validate(handler) for handler in handlers],
        variables=variables,
    )


def _kv(key: str, value: str, **extra: Any) -> Dict[str, Any]:
    return {"name": f"set {key}", "kv": {"key": key, "value": value}, **extra}


@pytest.fixture
def hosts() -> KvHosts:
    return KvHosts()


def _converge(plan: ExecutionPlan, hosts: KvHosts, name: str = "web-1", **kwargs):
    executor = ModuleExecutor(make_registry(), hosts, gatherer=KvGatherer(hosts))
    return ConvergenceEngine(plan, make_host(name), executor, **kwargs).run()


def test_second_run_changes_nothing(hosts: KvHosts) -> None:
    plan = _plan(
        [_kv("a", "1"), _kv("b", "{{ a_value }}", notify="reload")],
        [{"name": "reload", "command": "reload-app"}],
        variables={"a_value": "2"},
    )

    first = _converge(plan, hosts)
    second = _converge(plan, hosts)

    assert first.succeeded and second.succeeded
    assert [record.outcome for record in first.records] == [Outcome.CHANGED, Outcome.CHANGED, Outcome.CHANGED]
    assert [record.outcome for record in second.records] == [Outcome.OK, Outcome.OK]
    assert second.applied == ()
    assert hosts.count("web-1", "reload-app") == 1


def test_handler_runs_once_after_main_sequence(hosts: KvHosts) -> None:
    plan = _plan(
        [
            _kv("x", "1", notify="restart nginx"),
            _kv("y", "2", notify=["restart nginx"]),
            _kv("z", "3"),
        ],
        [{"name": "restart nginx", "command": "restart-nginx"}],
    )

    result = _converge(plan, hosts)

    assert result.state is HostState.SUCCEEDED
    assert [record.name for record in result.records] == ["set x", "set y", "set z", "restart nginx"]
    assert result.records[-1].handler is True
    assert hosts.count("web-1", "restart-nginx") == 1
    assert hosts.log["web-1"][-1] == "restart-nginx"


def test_handlers_run_in_first_notified_order(hosts: KvHosts) -> None:
    plan = _plan(
        [_kv("a", "1", notify=["second", "first"]), _kv("b", "1", notify="first")],
        [{"name": "first", "command": "first"}, {"name": "second", "command": "second"}],
    )
    result = _converge(plan, hosts)
    assert [record.name for record in result.records if record.handler] == ["second", "first"]


def test_unchanged_task_does_not_notify(hosts: KvHosts) -> None:
    hosts.state["web-1"]["conf"] = "v1"
    plan = _plan([_kv("conf", "v1", notify="reload")], [{"name": "reload", "command": "reload-app"}])

    result = _converge(plan, hosts)

    assert result.succeeded
    assert all(not record.handler for record in result.records)
    assert hosts.count("web-1", "reload-app") == 0


def test_failure_short_circuits_and_drops_handlers(hosts: KvHosts) -> None:
    plan = _plan(
        [
            _kv("a", "1", notify="reload"),
            {"name": "broken", "kv": {"key": "b", "value": "2", "fail": True}},
            _kv("c", "3"),
        ],
        [{"name": "reload", "command": "reload-app"}],
    )

    result = _converge(plan, hosts)

    assert result.state is HostState.FAILED
    assert result.failed_task == "broken"
    assert result.error["error_context"]["rc"] == 3
    assert [record.name for record in result.records] == ["set a", "broken"]
    assert [record.name for record in result.applied] == ["set a"]
    assert "c" not in hosts.state["web-1"]
    assert hosts.count("web-1", "reload-app") == 0


def test_ignored_failure_continues_and_registers(hosts: KvHosts) -> None:
    plan = _plan(
        [
            {"name": "sudo_check", "command": "fail", "register": "sudo_check", "ignore_errors": True},
            _kv("fallback", "yes", when="sudo_check.rc != 0"),
            _kv("never", "x", when="sudo_check.rc == 0"),
        ]
    )

    result = _converge(plan, hosts)

    assert result.succeeded
    assert [record.outcome for record in result.records] == [Outcome.FAILED, Outcome.CHANGED, Outcome.SKIPPED]
    assert result.records[0].ignored is True
    assert hosts.state["web-1"] == {"fallback": "yes"}


def test_unreachable_is_fatal_even_when_ignored() -> None:
    hosts = KvHosts(unreachable=["web-1"])
    plan = _plan([_kv("a", "1", ignore_errors=True), _kv("b", "2")])

    result = _converge(plan, hosts)

    assert result.state is HostState.FAILED
    assert len(result.records) == 1
    assert result.error["error_type"] == "UnreachableHost"


def test_register_exposes_module_output(hosts: KvHosts) -> None:
    plan = _plan(
        [
            _kv("token", "abc", register="token_result"),
            _kv("copy", "{{ token_result.value }}", when="token_result.changed"),
        ]
    )
    result = _converge(plan, hosts)
    assert result.succeeded
    assert hosts.state["web-1"]["copy"] == "abc"


def test_loop_registers_results_list(hosts: KvHosts) -> None:
    plan = _plan(
        [
            {"name": "files", "kv": {"key": "{{ item }}", "value": "1"}, "loop": ["a", "b"], "register": "files"},
            _kv("summary", "{{ files.results[1].value }}", when="files.changed"),
        ]
    )
    hosts.state["web-1"]["a"] = "1"

    result = _converge(plan, hosts)

    assert [record.outcome for record in result.records] == [Outcome.OK, Outcome.CHANGED, Outcome.CHANGED]
    assert hosts.state["web-1"]["summary"] == "1"


def test_no_log_redacts_records(hosts: KvHosts) -> None:
    plan = _plan([_kv("secret", "hunter2", register="secret", no_log=True)])
    result = _converge(plan, hosts)

    record = result.records[0]
    assert record.detail == NO_LOG_MESSAGE
    assert record.data == {}
    assert "hunter2" not in str(result.to_dict())


def test_host_vars_drive_interpolation(hosts: KvHosts) -> None:
    plan = _plan([_kv("port", "port={{ app_port }}"), _kv("me", "{{ inventory_hostname }}")], variables={"app_port": 3000})
    executor = ModuleExecutor(make_registry(), hosts, gatherer=KvGatherer(hosts))
    host = make_host("app-2", vars={"app_port": 3001})

    ConvergenceEngine(plan, host, executor).run()

    assert hosts.state["app-2"] == {"port": "port=3001", "me": "app-2"}


def test_stop_before_next_task_cancels(hosts: KvHosts) -> None:
    token = StopToken(enable_signals=False)
    plan = _plan([_kv("a", "1"), _kv("b", "2")])
    executor = ModuleExecutor(make_registry(), hosts, gatherer=KvGatherer(hosts))
    engine = ConvergenceEngine(plan, make_host(), executor, stop_token=token)

    original_apply = executor.apply

    def apply_then_stop(*args, **kwargs):
        record = original_apply(*args, **kwargs)
        token.request_stop()
        return record

    executor.apply = apply_then_stop
    result = engine.run()

    assert result.state is HostState.FAILED
    assert result.cancelled is True
    assert result.error["error_type"] == "RunCancelled"
    assert [record.name for record in result.records] == ["set a"]
    assert hosts.state["web-1"] == {"a": "1"}


def test_failing_handler_fails_host(hosts: KvHosts) -> None:
    plan = _plan([_kv("a", "1", notify="broken")], [{"name": "broken", "command": "fail"}])
    result = _converge(plan, hosts)
    assert result.state is HostState.FAILED
    assert result.failed_task == "broken"
