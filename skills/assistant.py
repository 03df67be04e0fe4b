from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from workflow.errors import ConfigurationError


def run_interactive(
    prompt: str,
    command: Sequence[str],
    cwd: Optional[Path] = None,
    install_hint: str = "",
) -> int:
    """Run the assistant with ``prompt`` on stdin and return its exit code."""
    args: List[str] = list(command)
    if not args:
        raise ConfigurationError("assistant.command is empty", install_hint)
    try:
        result = subprocess.run(
            args,
            input=prompt,
            text=True,
            cwd=str(cwd) if cwd else None,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ConfigurationError(f"{args[0]} CLI not found. Please install it first.", install_hint) from exc
    return result.returncode
