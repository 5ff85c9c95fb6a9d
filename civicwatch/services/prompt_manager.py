from pathlib import Path
from typing import Dict, Iterable, List, Optional

PACKAGE_PROMPTS = Path(__file__).resolve().parent.parent / "prompts"


class PromptManager:
    """Loads `<name>.txt` templates and fills their `{placeholders}`."""

    def __init__(self, search_paths: Optional[Iterable[Path]] = None):
        # Searched in order, first file found is used
        self.search_paths: List[Path] = list(search_paths or (PACKAGE_PROMPTS, Path.cwd() / "prompts"))
        self._cache: Dict[str, str] = {}

    def load_prompt(self, name: str) -> str:
        if name not in self._cache:
            self._cache[name] = self._read(f"{name}.txt")
        return self._cache[name]

    def _read(self, filename: str) -> str:
        for directory in self.search_paths:
            candidate = directory / filename
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8")
        searched = ", ".join(str(p) for p in self.search_paths)
        raise FileNotFoundError(f"Prompt '{filename}' not found (searched: {searched})")

    def render(self, name: str, **fields) -> str:
        return self.load_prompt(name).format(**fields).strip()
