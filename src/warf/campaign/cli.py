import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel
from pydantic_settings import get_subcommand

from warf.campaign.config import CampaignConfig, resolve_root
from warf.campaign.controller import CampaignController
from warf.campaign.errors import error_chain
from warf.campaign.settings import (
    BuildCommand,
    ContinuouslyCommand,
    DebugCommand,
    ListTargetsCommand,
    Settings,
    TargetCommand,
)
from warf.common.logger import setup_package_logger
from warf.common.telemetry import init_telemetry

logger = logging.getLogger(__name__)


def build_config(root_dir: Path | None, command: BaseModel, environ: Mapping[str, str]) -> CampaignConfig:
    if isinstance(command, ContinuouslyCommand):
        return CampaignConfig.create(
            root_dir,
            command.fuzzer,
            environ,
            name_filter=command.filter,
            timeout=command.timeout,
            infinite=command.infinite,
            cargo_update=command.cargo_update,
        )
    if isinstance(command, (BuildCommand, TargetCommand)):
        return CampaignConfig.create(root_dir, command.fuzzer, environ)
    # list-targets and debug run no engine
    return CampaignConfig(root=resolve_root(root_dir))


def handle_subcommand(controller: CampaignController, command: BaseModel) -> None:
    if isinstance(command, ListTargetsCommand):
        for target in controller.list_targets():
            print(target)
    elif isinstance(command, BuildCommand):
        controller.build_all()
    elif isinstance(command, TargetCommand):
        controller.run_single(command.name)
    elif isinstance(command, DebugCommand):
        controller.debug(command.name)
    elif isinstance(command, ContinuouslyCommand):
        report = controller.run_campaign()
        logger.info(
            f"Campaign finished after {report.cycles} cycle(s): "
            f"{len(report.succeeded)} ok, {len(report.soft_failed)} skipped"
        )
    else:
        raise ValueError(f"Unknown subcommand: {command}")


def run(settings: Settings, environ: Mapping[str, str]) -> int:
    command = get_subcommand(settings, is_required=False)
    if command is None:
        print("Please specify a command. Use --help for available commands.", file=sys.stderr)
        return 1

    try:
        config = build_config(settings.root_dir, command, environ)
        handle_subcommand(CampaignController(config), command)
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        for line in error_chain(e):
            print(line, file=sys.stderr)
        return 1
    return 0


def main() -> None:
    settings = Settings()
    setup_package_logger("warf", __name__, settings.log_level, settings.log_max_line_length)
    init_telemetry("warf")
    sys.exit(run(settings, os.environ))


if __name__ == "__main__":
    main()
