"""
Human-readable file sizes for version listings.
"""


def format_file_size(num_bytes: int) -> str:
    """512 -> "512 B", 2048 -> "2.00 KB", 3145728 -> "3.00 MB"."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.2f} KB"
    return f"{num_bytes / (1024 * 1024):.2f} MB"
