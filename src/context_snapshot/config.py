from __future__ import annotations

from pathlib import Path  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field, computed_field

CODE_DIR = "code"
SNAPSHOTS_DIR = "snapshots"

EXT2LANG: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cfg": "ini",
    ".conf": "ini",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".css": "css",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".html": "html",
    ".ini": "ini",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "javascript",
    ".kt": "kotlin",
    ".md": "markdown",
    ".php": "php",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".scss": "scss",
    ".sh": "bash",
    ".sql": "sql",
    ".swift": "swift",
    ".toml": "toml",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".vue": "vue",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".zsh": "bash",
}

NAME2LANG: dict[str, str] = {
    "dockerfile": "dockerfile",
    "makefile": "makefile",
}

DEFAULT_EXCLUDES = {
    ".aicontext",
    ".cache",
    ".git",
    ".hg",
    ".idea",
    ".ipynb_checkpoints",
    ".mypy_cache",
    ".next",
    ".pytest_cache",
    ".ruff_cache",
    ".svn",
    ".venv",
    ".vscode",
    ".DS_Store",
    "__pycache__",
    "build",
    "coverage",
    "dist",
    "node_modules",
    "target",
    "venv",
}

KEY_FILES_PRIORITY = [
    "pyproject.toml",
    "requirements.txt",
    "requirements-dev.txt",
    "package.json",
    ".pre-commit-config.yaml",
    ".pre-commit-config.yml",
    "Dockerfile",
    "Makefile",
]

DROP_PRESETS: dict[str, list[str]] = {
    "api": ["src/**/api/**", "src/**/routes/**"],
    "front": ["src/**/front/**", "front/**", "ui/**", "web/**"],
    "data": ["data/**", "datasets/**", "notebooks/**", "*.db", "*.sqlite", "*.sqlite3"],
    "docs": ["docs/**", "**/*.rst", "**/*.pdf"],
    "tests": ["tests/**"],
    "ci": [".github/**", ".gitlab-ci.yml", "ci/**"],
}


class FileRecord(BaseModel):
    """Metadata for a file selected for the bundle.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the repository root, POSIX separators.
        size: File size in bytes.
        mtime: POSIX mtime (float seconds since epoch).
        sha256: SHA-256 hex digest of the contents (empty when not computed).
        is_text: Whether the head of the file decodes as UTF-8.
        max_file_size: Size above which contents are truncated; None means no limit.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to repository root")
    size: int = Field(..., ge=0, description="File size in bytes")
    mtime: float = Field(..., description="POSIX modification time (seconds)")
    sha256: str = Field("", description="SHA-256 hex digest (optional)")
    is_text: bool = Field(default=True, description="UTF-8 sniff result")
    max_file_size: int | None = Field(default=None, description="Truncation threshold in bytes")

    @computed_field
    @property
    def language(self) -> str:
        """Code fence language for this file, empty when unknown."""
        return NAME2LANG.get(self.path.name.lower()) or EXT2LANG.get(self.path.suffix.lower(), "")

    @computed_field
    @property
    def is_too_big(self) -> bool:
        """Whether the contents exceed `max_file_size`."""
        if self.max_file_size is None:
            return False
        return self.size > self.max_file_size
