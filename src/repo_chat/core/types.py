import logging
from enum import Enum

logger = logging.getLogger(__name__)

LANGUAGE_BY_EXTENSION = {
    "js": "JavaScript",
    "jsx": "JavaScript",
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "py": "Python",
    "java": "Java",
    "go": "Go",
    "rs": "Rust",
    "md": "Markdown",
    "json": "JSON",
    "yaml": "YAML",
    "yml": "YAML",
    "txt": "Text",
}

OTHER_LANGUAGE = "Other"
NO_EXTENSION = "no-ext"


def language_for_extension(ext: str) -> str:
    return LANGUAGE_BY_EXTENSION.get(ext.lower(), OTHER_LANGUAGE)


class IndexStatus(str, Enum):
    IDLE = "idle"
    INDEXING = "indexing"
    READY = "ready"
    ERROR = "error"

    @classmethod
    def parse(cls, value: str | None) -> "IndexStatus":
        """Read a stored status value; absent or unknown values mean idle."""
        if not value:
            return cls.IDLE
        # Records written by older deployments used "completed" for ready.
        if value == "completed":
            return cls.READY
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown stored index status {value!r}, treating as idle")
            return cls.IDLE


class PipelineStage(str, Enum):
    RESOLVING = "resolving"
    FETCHING_TREE = "fetching_tree"
    FETCHING_CONTENT = "fetching_content"
    COMPUTING_STATS = "computing_stats"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"
