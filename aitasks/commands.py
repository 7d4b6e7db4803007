from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class FileRef:
    id: str
    file_path: str
    file_name: str
    mime_type: str = ""


@dataclass(frozen=True)
class ParsedCommand:
    """
    A command plus its raw options. `command` is kept as a plain string so an
    unknown value can still reach the orchestrator and fail at dispatch.
    Defaults for the options are applied by each pipeline, not here.
    """
    command: str
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "options", MappingProxyType(dict(self.options or {})))

    @classmethod
    def from_payload(cls, command: str, options: Mapping[str, Any] | None = None) -> "ParsedCommand":
        return cls(command=str(command), options=options or {})

    def option(self, name: str, default: Any) -> Any:
        # Falsy values (missing, "", 0) fall back to the pipeline default.
        return self.options.get(name) or default

    def with_options(self, **overrides: Any) -> "ParsedCommand":
        return ParsedCommand(command=self.command, options={**self.options, **overrides})
