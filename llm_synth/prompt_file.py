"""Read a question from a Markdown file with optional YAML front matter."""

from pathlib import Path
from typing import Any

import frontmatter


def _as_model_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [m.strip() for m in value.split(",") if m.strip()]
    return [str(m).strip() for m in value if str(m).strip()]


def parse_prompt_file(file_path: Path) -> tuple[str, dict[str, Any]]:
    """Parse a prompt file.

    Returns:
        (content, metadata) where content is the body text and metadata may
        contain: models (list[str]), stream (bool), system (str).
        Unrecognized front matter keys are dropped. No front matter -> {}.
    """
    post = frontmatter.load(str(file_path))
    content = post.content.strip()
    metadata: dict[str, Any] = {}
    if "models" in post.metadata:
        metadata["models"] = _as_model_list(post.metadata["models"])
    if "stream" in post.metadata:
        metadata["stream"] = bool(post.metadata["stream"])
    if post.metadata.get("system"):
        metadata["system"] = str(post.metadata["system"])
    return content, metadata
