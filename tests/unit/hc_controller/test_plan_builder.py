"""Tests for build-time validation and loop expansion."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, ValidationError

from hc_common.errors import PlanValidationError, UnknownHandler
from hc_controller.engine.plan_builder import TaskGraphBuilder, build_plan
from hc_controller.models.plan import HandlerSpec, PlaybookSpec, TaskSpec
from tests.helpers.fakes import make_registry


pytestmark = pytest.mark.unit_controller


def _tasks(*raw):
    return [TaskSpec.model_validate(item) for item in raw]


def _handlers(*raw):
    return [HandlerSpec.model_validate(item) for item in raw]


def test_short_form_and_args_are_normalized() -> None:
    spec = TaskSpec.model_validate(
        {
            "name": "Create venv",
            "command": "python3 -m venv venv",
            "args": {"chdir": "/opt/app"},
            "notify": "restart app",
        }
    )
    assert spec.module == "command"
    assert spec.params == {"cmd": "python3 -m venv venv", "chdir": "/opt/app"}
    assert spec.notify == ["restart app"]


def test_register_keyword_feeds_the_invocation() -> None:
    spec = TaskSpec.model_validate({"kv": {"key": "a", "value": "1"}, "register": "out"})
    assert spec.register_as == "out"
    assert not any(hasattr(BaseModel, name) for name in TaskSpec.model_fields)

    plan = build_plan([spec], registry=make_registry())
    assert plan.tasks[0].register == "out"


def test_task_must_name_exactly_one_module() -> None:
    with pytest.raises(ValidationError):
        TaskSpec.model_validate({"name": "x", "apt": {"name": "git"}, "file": {"path": "/x"}})


def test_handler_requires_name() -> None:
    with pytest.raises(ValidationError):
        HandlerSpec.model_validate({"service": {"name": "nginx", "state": "restarted"}})


def test_plan_preserves_declared_order() -> None:
    plan = build_plan(
        _tasks(
            {"name": "one", "kv": {"key": "a", "value": "1"}},
            {"name": "two", "kv": {"key": "b", "value": "2"}},
        ),
        registry=make_registry(),
    )
    assert [task.name for task in plan.tasks] == ["one", "two"]
    assert [task.task_id for task in plan.tasks] == ["1", "2"]


def test_unknown_handler_fails_build() -> None:
    with pytest.raises(UnknownHandler, match="restart nginx"):
        build_plan(
            _tasks({"name": "conf", "kv": {"key": "a", "value": "1"}, "notify": "restart nginx"}),
            _handlers({"name": "restart apache", "command": "apachectl graceful"}),
        )


def test_unknown_module_fails_build() -> None:
    with pytest.raises(PlanValidationError, match="unknown module 'rsync'"):
        build_plan(_tasks({"name": "deps", "rsync": {"src": "build/"}}), registry=make_registry())


def test_invalid_condition_fails_build() -> None:
    with pytest.raises(PlanValidationError):
        build_plan(_tasks({"kv": {"key": "a", "value": "1"}, "when": "len(x) > 0"}))


@pytest.mark.parametrize(
    "handler",
    [
        {"name": "h", "command": "true", "notify": "other"},
        {"name": "h", "command": "true", "loop": [1, 2]},
    ],
)
def test_handlers_cannot_notify_or_loop(handler) -> None:
    with pytest.raises(PlanValidationError):
        build_plan([], _handlers(handler))


def test_duplicate_handler_names_fail() -> None:
    with pytest.raises(PlanValidationError, match="Duplicate handler"):
        build_plan([], _handlers({"name": "h", "command": "true"}, {"name": "h", "command": "false"}))


def test_literal_loop_expands_in_order() -> None:
    plan = build_plan(
        _tasks({"name": "touch", "file": {"path": "{{ item }}", "state": "touch"}, "loop": ["/a", "/b"]})
    )
    assert [task.task_id for task in plan.tasks] == ["1.1", "1.2"]
    assert [task.item for task in plan.tasks] == ["/a", "/b"]
    assert plan.tasks[1].display_name == "touch (item=/b)"
    assert plan.tasks[1].loop_index == 1
    assert plan.tasks[1].loop_size == 2


def test_variable_loop_is_resolved_from_declared_vars() -> None:
    plan = build_plan(
        _tasks({"name": "logs", "file": {"path": "{{ item }}"}, "loop": "{{ log_files }}"}),
        variables={"log_dir": "/var/log/app", "log_files": ["{{ log_dir }}/out.log", "{{ log_dir }}/err.log"]},
    )
    assert [task.item for task in plan.tasks] == ["/var/log/app/out.log", "/var/log/app/err.log"]


def test_empty_loop_produces_no_invocations() -> None:
    plan = build_plan(_tasks({"name": "none", "command": "true", "loop": []}))
    assert plan.tasks == ()


@pytest.mark.parametrize("loop", ["{{ undeclared }}", "{{ scalar }}", "not-a-reference"])
def test_loop_must_resolve_to_a_list(loop: str) -> None:
    with pytest.raises(PlanValidationError, match="Loop of task"):
        build_plan(_tasks({"name": "bad", "command": "true", "loop": loop}), variables={"scalar": 3})


def test_plan_is_read_only_and_reusable() -> None:
    variables = {"users": ["a"]}
    plan = build_plan(_tasks({"name": "x", "command": "echo {{ users }}"}), variables=variables)
    variables["users"].append("b")

    assert plan.variables["users"] == ["a"]
    with pytest.raises(TypeError):
        plan.tasks[0].params["cmd"] = "rm -rf /"


def test_build_playbook_carries_plan_settings() -> None:
    playbook = PlaybookSpec.model_validate(
        {
            "name": "deploy",
            "become": True,
            "vars": {"port": 80},
            "tasks": [{"name": "conf", "kv": {"key": "port", "value": "{{ port }}"}, "notify": "reload"}],
            "handlers": [{"name": "reload", "command": "nginx -s reload"}],
        }
    )
    plan = TaskGraphBuilder(make_registry()).build_playbook(playbook)

    assert plan.name == "deploy"
    assert plan.become is True
    assert plan.handler("reload").is_handler is True
    assert plan.tasks[0].notify == ("reload",)
