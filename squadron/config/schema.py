from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from squadron.keys import DEFAULT_BINDINGS, KeyName


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    default_program: str = "claude"
    auto_yes: bool = False
    branch_prefix: str = "squadron/"
    ide_command: str = "code"
    test_command: str = "npm test"
    diff_tool: Optional[str] = None  # None = git's configured difftool
    update_check_interval_minutes: int = Field(default=30, ge=1)
    poll_interval_ms: int = Field(default=500, ge=50)

    @field_validator("default_program", "ide_command", "test_command")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command must not be blank")
        return v.strip()

    @field_validator("branch_prefix")
    @classmethod
    def validate_branch_prefix(cls, v: str) -> str:
        """Branch prefixes are joined directly with the instance title."""
        if " " in v:
            raise ValueError(f"Invalid branch prefix: {v!r} (spaces are not allowed)")
        return v


class KeyBindingEntry(BaseModel):
    model_config = ConfigDict(extra="allow")
    command: str
    keys: List[str] = []
    help: str = ""


class KeyBindingsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    version: str = "1.0"
    bindings: List[KeyBindingEntry] = []

    @classmethod
    def defaults(cls) -> "KeyBindingsConfig":
        return cls(
            bindings=[
                KeyBindingEntry(command=name.value, keys=list(keys), help=help_text)
                for name, keys, help_text in DEFAULT_BINDINGS
            ]
        )

    def to_key_map(self) -> Dict[str, KeyName]:
        """Build the key string -> command lookup; unknown commands are skipped."""
        key_map: Dict[str, KeyName] = {}
        known = {name.value for name in KeyName}
        for binding in self.bindings:
            if binding.command not in known:
                continue
            for key in binding.keys:
                key_map[key] = KeyName(binding.command)
        return key_map

    def get_binding(self, command: str) -> Optional[KeyBindingEntry]:
        for binding in self.bindings:
            if binding.command == command:
                return binding
        return None

    def set_binding(self, command: str, keys: List[str], help: Optional[str] = None) -> None:
        """Replace the keys for a command, adding the binding if it is missing."""
        existing = self.get_binding(command)
        if existing is not None:
            existing.keys = list(keys)
            if help is not None:
                existing.help = help
            return
        self.bindings.append(KeyBindingEntry(command=command, keys=list(keys), help=help or ""))

    def validate_bindings(self) -> Dict[str, List[str]]:
        """Return conflicts as key -> commands sharing it.

        Bindings without keys are reported under the empty key.
        """
        key_to_commands: Dict[str, List[str]] = {}
        empty: List[str] = []
        for binding in self.bindings:
            if not binding.keys:
                empty.append(binding.command)
            for key in binding.keys:
                key_to_commands.setdefault(key, []).append(binding.command)

        conflicts = {key: commands for key, commands in key_to_commands.items() if len(commands) > 1}
        if empty:
            conflicts[""] = empty
        return conflicts
