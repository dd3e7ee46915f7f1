"""Pure display helpers shared by the engine and the live display."""

COMMAND_MAX_LENGTH = 60
ELLIPSIS = "…"


def truncate_command(command: str, max_length: int = COMMAND_MAX_LENGTH) -> str:
    """Cap a command line at max_length characters, marking the cut with an ellipsis."""
    if len(command) <= max_length:
        return command
    return command[: max_length - 1] + ELLIPSIS


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def bar(percent: float, width: int = 20, color: str = "green") -> str:
    """Render a percentage as a Rich markup bar of fixed width."""
    filled = min(width, max(0, int(percent * width / 100)))
    return f"[{color}]" + "█" * filled + f"[/{color}]" + "[dim]" + "░" * (width - filled) + "[/dim]"
