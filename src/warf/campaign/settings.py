from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, CliImplicitFlag, CliPositionalArg, CliSubCommand, SettingsConfigDict

from warf.campaign.backends import FuzzerKind
from warf.campaign.config import DEFAULT_TIMEOUT


class FuzzerOption(BaseModel):
    fuzzer: Annotated[
        FuzzerKind,
        Field(default=FuzzerKind.HONGGFUZZ, description="Which fuzzer to run (afl, honggfuzz, libfuzzer)"),
    ]

    @field_validator("fuzzer", mode="before")
    @classmethod
    def _case_insensitive(cls, value: object) -> object:
        if isinstance(value, str):
            return FuzzerKind.parse(value)
        return value


class ListTargetsCommand(BaseModel):
    """List all available targets"""

    pass


class BuildCommand(FuzzerOption):
    """Build all targets for this specific fuzzer"""


class TargetCommand(FuzzerOption):
    """Run one target with specific fuzzer"""

    name: CliPositionalArg[str] = Field(description="Which target to run")


class DebugCommand(BaseModel):
    """Debug one target"""

    name: CliPositionalArg[str] = Field(description="Which target to debug")


class ContinuouslyCommand(FuzzerOption):
    """Run all fuzz targets"""

    filter: Annotated[str | None, Field(default=None, description="Only run target containing this string")]
    timeout: Annotated[int, Field(default=DEFAULT_TIMEOUT, gt=0, description="Set timeout per target (seconds)")]
    infinite: CliImplicitFlag[bool] = Field(default=False, description="Run until the end of time (or Ctrl+C)")
    cargo_update: CliImplicitFlag[bool] = Field(default=False, description="Run `cargo update` between cycles")


class Settings(BaseSettings):
    """WARF - WebAssembly Runtimes Fuzzing project"""

    root_dir: Annotated[Path | None, Field(default=None, description="Project root (defaults to the current directory)")]
    log_level: Annotated[str, Field(default="info", description="Log level")]
    log_max_line_length: Annotated[int | None, Field(default=None, description="Truncate log lines to this length")]

    list_targets: CliSubCommand[ListTargetsCommand]
    build: CliSubCommand[BuildCommand]
    target: CliSubCommand[TargetCommand]
    debug: CliSubCommand[DebugCommand]
    continuously: CliSubCommand[ContinuouslyCommand]

    model_config = SettingsConfigDict(
        env_prefix="WARF_",
        env_file=".env",
        cli_parse_args=True,
        cli_prog_name="warf",
        cli_kebab_case=True,
        nested_model_default_partial_update=True,
        env_nested_delimiter="__",
        extra="allow",
    )
