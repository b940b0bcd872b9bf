"""Init command: write the default configuration file."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from ..config import default_config_path, get_default_config_content

console = Console()


def init_global(force: bool = False, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Create the config file (and its directory) unless it already exists."""
    path = config_path or default_config_path()
    result: Dict[str, Any] = {
        "success": False,
        "config_path": str(path),
        "created": False,
        "message": "",
        "errors": [],
    }

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists() and not force:
            result["success"] = True
            result["message"] = f"Config already exists at {path} (use --force to overwrite)"
            return result
        path.write_text(get_default_config_content(), encoding="utf-8")
    except OSError as e:
        result["errors"].append(str(e))
        result["message"] = f"Failed to write config: {e}"
        return result

    result["success"] = True
    result["created"] = True
    result["message"] = f"Wrote default config to {path}"
    return result


def init_command(force: bool = False) -> int:
    result = init_global(force=force)
    if result["success"]:
        console.print(f"[green]✓[/green] {result['message']}")
        return 0
    console.print(f"[red]✗[/red] {result['message']}")
    for error in result["errors"]:
        console.print(f"  [dim]{error}[/dim]")
    return 1
