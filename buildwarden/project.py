"""
Project, command and tool definitions.

A Project is lent to every build, run, tool and command invocation. Tools
are frozen so each invocation works on its own copy; failures travel back
as ToolResult values instead of being written onto a shared Tool.
"""

from dataclasses import dataclass, field


@dataclass
class Command:
    """An ad-hoc command run before the build or after the process starts."""

    command: str
    path: str = ""
    type: str = "before"  # before, after


@dataclass(frozen=True)
class Tool:
    """An auxiliary toolchain command (formatter, checker, generator)."""

    name: str
    cmd: str
    options: tuple[str, ...] = ()
    dir: bool = False  # operate on the containing directory, not the file
    enabled: bool = True


@dataclass(frozen=True)
class ToolResult:
    """A failed tool invocation and its combined output."""

    tool: Tool
    path: str
    output: str


@dataclass
class Project:
    """A monitored project."""

    name: str
    base: str
    path: str = ""
    args: list[str] = field(default_factory=list)
    error_output_pattern: str = ""
    commands: list[Command] = field(default_factory=list)
    tools: list[Tool] = field(default_factory=list)

    def run_args(self) -> list[str]:
        """Flatten the configured args, each one split on whitespace."""
        args = []
        for arg in self.args:
            args.extend(arg.split())
        return args


def default_tools(
    fmt: bool = False,
    generate: bool = False,
    test: bool = False,
    vet: bool = False,
) -> list[Tool]:
    """The stock toolset, with each tool enabled by its flag."""
    return [
        Tool(name="Go Fmt", cmd="gofmt", options=("-s", "-w", "-l"), enabled=fmt),
        Tool(name="Go Generate", cmd="go", options=("generate",), dir=True, enabled=generate),
        Tool(name="Go Test", cmd="go", options=("test",), dir=True, enabled=test),
        Tool(name="Go Vet", cmd="go", options=("vet",), dir=True, enabled=vet),
    ]
