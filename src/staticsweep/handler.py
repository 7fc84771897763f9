# staticsweep/handler.py
"""
Lambda entrypoint. Trigger it with a payload such as
``{"bucket": "static-web-np", "action": "list", "retainDays": 30}``.

Use ``action: list`` to see which folders would be removed and
``action: delete`` to remove them. ``retainDays: 1`` removes every unused
folder regardless of age.
"""

from typing import Any, Optional

from rich.console import Console

from staticsweep.config import config_from_event
from staticsweep.errors import CleanupError
from staticsweep.pipeline import run_cleanup


console = Console()


def handler(event: Optional[dict[str, Any]], context: Any = None) -> str:
    try:
        config = config_from_event(event)
        report = run_cleanup(config)
    except CleanupError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise
    except Exception:
        console.print_exception()
        raise
    return report.message
