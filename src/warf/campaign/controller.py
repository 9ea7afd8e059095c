from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from warf.campaign.backends import CARGO, Backend, get_backend
from warf.campaign.config import CampaignConfig
from warf.campaign.errors import CampaignError, CommandError, FuzzerQuitError
from warf.campaign.registry import TargetRegistry
from warf.campaign.runner import Invocation, Outcome, ProcessRunner, RunOutcome
from warf.campaign.workspace import DEBUG_PREFIX, WorkspaceMaterializer
from warf.common.telemetry import CampaignActionCategory, set_campaign_attributes

logger = logging.getLogger(__name__)


class CampaignState(Enum):
    IDLE = "idle"
    PREPARING_WORKSPACE = "preparing_workspace"
    RUNNING_TARGET = "running_target"
    EVALUATING_RESULT = "evaluating_result"
    NEXT_TARGET = "next_target"
    NEXT_CYCLE = "next_cycle"
    ABORTED = "aborted"
    DONE = "done"


@dataclass
class CampaignReport:
    """Progress of a campaign. The target lists cover the current cycle only."""

    cycles: int = 0
    runs: int = 0
    attempted: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    soft_failed: list[str] = field(default_factory=list)

    def start_cycle(self) -> None:
        self.attempted.clear()
        self.succeeded.clear()
        self.soft_failed.clear()


def select_targets(targets: Iterable[str], name_filter: str | None) -> list[str]:
    """Keep targets whose name contains `name_filter` (case-sensitive), in order."""
    if name_filter is None:
        return list(targets)
    return [target for target in targets if name_filter in target]


def decide(outcome: RunOutcome) -> CampaignState:
    """Where the campaign goes after one target run."""
    if outcome.kind is Outcome.HARD_FAILURE:
        return CampaignState.ABORTED
    return CampaignState.NEXT_TARGET


class CampaignController:
    def __init__(
        self,
        config: CampaignConfig,
        registry: TargetRegistry | None = None,
        backend: Backend | None = None,
        materializer: WorkspaceMaterializer | None = None,
        runner: ProcessRunner | None = None,
    ):
        layout = config.layout
        self.config = config
        self.registry = registry or TargetRegistry(layout.targets_source)
        self.backend = backend or get_backend(config.fuzzer, layout)
        self.materializer = materializer or WorkspaceMaterializer(layout, config.skip_existing)
        self.runner = runner or ProcessRunner()
        self.state = CampaignState.IDLE
        self.report = CampaignReport()
        self._tracer = trace.get_tracer(__name__)

    def _transition(self, state: CampaignState) -> None:
        logger.debug(f"Campaign state {self.state.value} -> {state.value}")
        self.state = state

    def list_targets(self) -> list[str]:
        return self.registry.discover()

    def run_target(self, target: str) -> RunOutcome:
        """Prepare the workspace for `target` and run the engine session once."""
        backend = self.backend
        with self._tracer.start_as_current_span("run_target") as span:
            set_campaign_attributes(
                span,
                CampaignActionCategory.FUZZING,
                "run_target",
                {
                    "campaign.target": target,
                    "campaign.fuzzer": backend.kind.value,
                    "campaign.timeout": self.config.timeout,
                },
            )
            self._transition(CampaignState.PREPARING_WORKSPACE)
            try:
                backend.prepare(self.materializer, self.runner, [target])
                invocations = backend.run_invocations(target, self.config.timeout, self.config.extra_args)
            except CampaignError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                return RunOutcome.hard_failure(e)

            self._transition(CampaignState.RUNNING_TARGET)
            outcome = RunOutcome(Outcome.SUCCESS, 0)
            for invocation in invocations:
                logger.info(f"[WARF] {backend.display_name}: {invocation.describe()}")
                outcome = self.runner.execute(invocation)
                if not outcome.success:
                    break

            if outcome.success:
                span.set_status(Status(StatusCode.OK))
            else:
                span.set_status(Status(StatusCode.ERROR, outcome.kind.value))
            return outcome

    def refresh_dependencies(self) -> None:
        cmd = ["update"]
        logger.info("[WARF] Running `cargo update`")
        returncode = self.runner.run(CARGO, cmd, working_dir=self.config.root)
        if returncode != 0:
            raise CommandError([CARGO, *cmd], returncode)

    def run_campaign(self) -> CampaignReport:
        """Run every (filtered) target in turn, once or forever.

        A target whose engine exits non-zero is skipped; any infrastructure
        error aborts the campaign and is re-raised unchanged.
        """
        report = self.report = CampaignReport()
        targets = select_targets(self.registry.discover(), self.config.name_filter)
        if not targets:
            logger.warning(f"[WARF] No target matches filter `{self.config.name_filter}`, nothing to fuzz")
            self._transition(CampaignState.DONE)
            return report
        logger.info(f"[WARF] {self.backend.display_name}: campaign over {len(targets)} targets")

        while True:
            report.start_cycle()
            for target in targets:
                report.attempted.append(target)
                report.runs += 1
                outcome = self.run_target(target)
                self._transition(CampaignState.EVALUATING_RESULT)
                next_state = decide(outcome)
                if next_state is CampaignState.ABORTED:
                    self._transition(CampaignState.ABORTED)
                    raise outcome.error

                if outcome.success:
                    report.succeeded.append(target)
                else:
                    report.soft_failed.append(target)
                    logger.info(
                        f"[WARF] {self.backend.display_name}: fuzzer failed on {target} "
                        f"(exit status {outcome.returncode}), continuing with the next target"
                    )
                self._transition(next_state)

            report.cycles += 1
            if not self.config.infinite:
                break

            self._transition(CampaignState.NEXT_CYCLE)
            if self.config.cargo_update:
                try:
                    self.refresh_dependencies()
                except CampaignError:
                    self._transition(CampaignState.ABORTED)
                    raise

        self._transition(CampaignState.DONE)
        return report

    def _check(self, invocation: Invocation, target: str) -> None:
        """Run a single-shot command; a non-zero exit is fatal here."""
        logger.info(f"[WARF] {self.backend.display_name}: {invocation.describe()}")
        returncode = self.runner.run(invocation.program, invocation.args, invocation.env, invocation.cwd)
        if returncode != 0:
            raise FuzzerQuitError(self.backend.display_name, target, invocation.command, returncode)

    def build_all(self) -> list[str]:
        targets = self.registry.discover()
        backend = self.backend
        with self._tracer.start_as_current_span("build_targets") as span:
            set_campaign_attributes(
                span,
                CampaignActionCategory.BUILDING,
                "build_targets",
                {"campaign.fuzzer": backend.kind.value, "campaign.targets": len(targets)},
            )
            backend.prepare(self.materializer, self.runner, targets)
            logger.info(f"[WARF] {backend.display_name}: Start building")
            for invocation in backend.build_invocations(targets):
                self._check(invocation, invocation.target or ",".join(targets))
            logger.info(f"[WARF] {backend.display_name}: building OK")
            span.set_status(Status(StatusCode.OK))
        return targets

    def run_single(self, target: str) -> None:
        self.registry.validate(target)
        outcome = self.run_target(target)
        if outcome.kind is Outcome.HARD_FAILURE:
            raise outcome.error
        if outcome.kind is Outcome.SOFT_FAILURE:
            raise FuzzerQuitError(self.backend.display_name, target, outcome.command, outcome.returncode)

    def debug(self, target: str) -> None:
        self.registry.validate(target)
        debug_bin = f"{DEBUG_PREFIX}{target}"
        with self._tracer.start_as_current_span("debug_target") as span:
            set_campaign_attributes(span, CampaignActionCategory.DEBUGGING, "debug_target", {"campaign.target": target})
            self.materializer.prepare_target_tree()
            debug_dir = self.materializer.prepare_debug_tree()
            self.materializer.instantiate_debug_harness(target)

            cmd = ["build", "--bin", debug_bin]
            returncode = self.runner.run(CARGO, cmd, working_dir=debug_dir)
            if returncode != 0:
                raise FuzzerQuitError("Debug", target, [CARGO, *cmd], returncode)
            span.set_status(Status(StatusCode.OK))
        logger.info(f"[WARF] Debug: {debug_bin} compiled")
