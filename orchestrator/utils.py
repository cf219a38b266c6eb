"""Helpers for the ``studyplan`` command line."""
from pathlib import Path

from rich.console import Console

err_console = Console(stderr=True)

URL_PREFIXES = ("http://", "https://")


def is_url(path_str: str) -> bool:
    return path_str.startswith(URL_PREFIXES)


def expand_pdf_paths(paths: tuple[str, ...]) -> list[str]:
    """Resolve CLI arguments into the syllabus PDFs to extract.

    Args:
        paths: Files, directories (searched non-recursively for ``*.pdf``) and http(s) URLs

    Returns:
        PDF paths and URLs in argument order, without duplicates

    Raises:
        SystemExit: If any path is missing or a directory holds no PDFs; every
            problem is reported before exiting
    """
    resolved: list[str] = []
    problems: list[str] = []

    def add(item: str) -> None:
        if item not in resolved:
            resolved.append(item)

    for path_str in paths:
        if is_url(path_str):
            add(path_str)
            continue

        path = Path(path_str)
        if path.is_dir():
            found = sorted(path.glob("*.pdf"))
            if not found:
                problems.append(f"Directory '{path_str}' contains no PDF files.")
            for pdf in found:
                add(str(pdf))
        elif path.is_file():
            if path.suffix.lower() != ".pdf":
                err_console.print(f"[yellow]Warning:[/yellow] '{path_str}' does not look like a PDF.")
            add(path_str)
        else:
            problems.append(f"Path '{path_str}' does not exist.")

    if problems:
        for problem in problems:
            err_console.print(f"[red]Error:[/red] {problem}")
        raise SystemExit(1)
    return resolved
