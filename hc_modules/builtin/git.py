"""Clone a repository and keep a checkout at a given ref."""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Type

from hc_common.errors import ModuleExecutionError
from hc_modules.interface import (
    BaseModuleParams,
    FactKey,
    ModuleContext,
    ModuleResult,
    TaskModule,
    quote,
)

_COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")


class GitParams(BaseModuleParams):
    repo: str
    dest: str
    version: str = "HEAD"
    force: bool = False


def remote_fact_target(repo: str, version: str) -> str:
    return f"{repo}#{version}"


class GitModule(TaskModule):
    """Compare the checkout HEAD with what ``version`` resolves to remotely."""

    @property
    def name(self) -> str:
        return "git"

    @property
    def description(self) -> str:
        return "Deploy a checkout of a git repository"

    @property
    def params_cls(self) -> Type[BaseModuleParams]:
        return GitParams

    def fact_keys(self, params: GitParams) -> List[FactKey]:
        return [
            FactKey("git", params.dest),
            FactKey("git_remote", remote_fact_target(params.repo, params.version)),
        ]

    def apply(
        self,
        ctx: ModuleContext,
        params: GitParams,
        current_state: Mapping[FactKey, Any],
    ) -> ModuleResult:
        checkout = current_state.get(FactKey("git", params.dest)) or {}
        wanted = current_state.get(
            FactKey("git_remote", remote_fact_target(params.repo, params.version))
        )
        dest = quote(params.dest)

        if not checkout.get("present"):
            pinned = _COMMIT_RE.match(params.version) is not None
            branch = "" if params.version == "HEAD" or pinned else f"--branch {quote(params.version)} "
            ctx.run(f"git clone {branch}-- {quote(params.repo)} {dest}")
            if pinned:
                ctx.run(f"git -C {dest} checkout --quiet {params.version}")
            return ModuleResult(
                changed=True,
                msg=f"cloned {params.repo}",
                data={"before": None, "after": wanted},
            )

        if wanted is None:
            raise ModuleExecutionError(
                f"version {params.version} not found in {params.repo}",
                context={"repo": params.repo, "version": params.version},
            )
        before = checkout.get("revision")
        if before == wanted:
            return ModuleResult(changed=False, data={"before": before, "after": wanted})

        ctx.run(f"git -C {dest} fetch --quiet origin {quote(params.version)}")
        if params.force:
            ctx.run(f"git -C {dest} reset --quiet --hard FETCH_HEAD")
        else:
            ctx.run(f"git -C {dest} merge --quiet --ff-only FETCH_HEAD")
        return ModuleResult(
            changed=True,
            msg=f"updated {params.dest} to {wanted[:12]}",
            data={"before": before, "after": wanted},
        )
