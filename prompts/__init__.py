"""Loading of the plain-text prompts sent to the extraction oracle."""
from functools import lru_cache
from pathlib import Path
import typing as t

EXTRACTION_PROMPT = "syllabus_extraction"
FALLBACK_EXTRACTION_PROMPT = "syllabus_extraction_fallback"

PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def _read_prompt(prompt_file: Path) -> str:
    try:
        return prompt_file.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise IOError(f"Error reading prompt file {prompt_file}: {e}")


def load_prompt(prompt_name: str, prompts_dir: t.Optional[str] = None) -> str:
    """
    Load a prompt from a text file.

    Args:
        prompt_name: Name of the prompt file (without .txt extension)
        prompts_dir: Optional custom path to the prompts directory.
                    Defaults to this package's directory.

    Returns:
        The content of the prompt file, stripped of surrounding whitespace.

    Raises:
        FileNotFoundError: If the prompt file doesn't exist.
        IOError: If there's an error reading the file.
    """
    base_dir = Path(prompts_dir) if prompts_dir is not None else PROMPTS_DIR
    prompt_file = base_dir / f"{prompt_name}.txt"

    if not prompt_file.exists():
        raise FileNotFoundError(f"Prompt file not found: {prompt_file}")

    return _read_prompt(prompt_file)
