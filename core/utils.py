"""
Formatting helpers for log lines
"""


def human_readable_size(num_bytes: int) -> str:
    """1536 -> '1.50 KB'"""
    if num_bytes >= 1024 ** 3:
        return f"{num_bytes / 1024 ** 3:.2f} GB"
    if num_bytes >= 1024 ** 2:
        return f"{num_bytes / 1024 ** 2:.2f} MB"
    if num_bytes >= 1024:
        return f"{num_bytes / 1024:.2f} KB"
    return f"{num_bytes} bytes"


def format_elapsed(seconds: float) -> str:
    return f"{int(seconds)}s"
