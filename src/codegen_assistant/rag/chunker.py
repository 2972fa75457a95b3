"""Code chunker for generated Vue projects.

Splits one source file into retrieval fragments along semantic boundaries:

- files up to ``max_fragment_size`` characters stay whole;
- larger ``.vue`` components are split into their ``template`` / ``script`` /
  ``style`` sections (``src/App.vue#style``);
- everything else (and any oversized section) is split on line boundaries
  into ``#part{i}`` fragments.

Fragments that hold a whole file or a whole component section are marked
``is_complete`` in their metadata; the prompt augmenter uses that flag to
decide whether the model may edit against the fragment directly.
"""

from __future__ import annotations

import re
import uuid
from pathlib import PurePosixPath

from codegen_assistant.domain.models import CodeFragment

SUPPORTED_EXTENSIONS = (".vue", ".js", ".ts", ".css", ".json", ".html")

_FILE_KINDS = {
    ".vue": "vue",
    ".js": "javascript",
    ".ts": "typescript",
    ".css": "css",
    ".json": "json",
    ".html": "html",
}

_FRAGMENT_KINDS = {
    ".vue": "COMPONENT",
    ".js": "MODULE",
    ".ts": "MODULE",
    ".css": "STYLE",
    ".json": "CONFIG",
    ".html": "HTML",
}

_COMPONENT_NAME_RE = re.compile(r"""name:\s*['"]([^'"]+)['"]""")
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)

# Stable ids: re-indexing the same file yields the same fragment ids.
_FRAGMENT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "codegen-assistant/fragments")


def is_supported(file_path: str) -> bool:
    return file_path.lower().endswith(SUPPORTED_EXTENSIONS)


def file_kind(file_path: str) -> str:
    return _FILE_KINDS.get(PurePosixPath(file_path.lower()).suffix, "unknown")


def fragment_kind(file_path: str) -> str:
    return _FRAGMENT_KINDS.get(PurePosixPath(file_path.lower()).suffix, "FILE")


def fragment_id(project_id: str, tagged_path: str, index: int) -> str:
    return str(uuid.uuid5(_FRAGMENT_NAMESPACE, f"{project_id}|{tagged_path}|{index}"))


class CodeChunker:
    """Format-aware splitter producing :class:`CodeFragment` objects."""

    def __init__(self, max_fragment_size: int = 8000) -> None:
        if max_fragment_size < 1:
            raise ValueError("max_fragment_size must be positive")
        self.max_fragment_size = max_fragment_size

    def chunk(self, project_id: str, file_path: str, content: str) -> list[CodeFragment]:
        if not content or not content.strip() or not is_supported(file_path):
            return []

        kind = fragment_kind(file_path)
        if len(content) <= self.max_fragment_size:
            return [self._fragment(project_id, file_path, file_path, content, kind, 0, complete=True)]

        if file_path.lower().endswith(".vue"):
            fragments = self._split_component(project_id, file_path, content)
            # a lone section is not a split; fall back to line packing
            if len(fragments) > 1:
                return fragments
        return self._split_lines(project_id, file_path, file_path, content, kind, start=0)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _split_component(self, project_id: str, file_path: str, content: str) -> list[CodeFragment]:
        sections = [
            ("template", "TEMPLATE", _outer_block(content, "<template", "</template>")),
            ("script", "SCRIPT", "\n\n".join(m.group(0) for m in _SCRIPT_RE.finditer(content))),
            ("style", "STYLE", _outer_block(content, "<style", "</style>")),
        ]

        fragments: list[CodeFragment] = []
        for name, kind, body in sections:
            if not body.strip():
                continue
            tagged = f"{file_path}#{name}"
            if len(body) <= self.max_fragment_size:
                fragments.append(
                    self._fragment(project_id, file_path, tagged, body, kind, len(fragments), complete=True)
                )
            else:
                fragments.extend(
                    self._split_lines(project_id, file_path, tagged, body, kind, start=len(fragments))
                )
        return fragments

    def _split_lines(
        self,
        project_id: str,
        file_path: str,
        tagged_path: str,
        content: str,
        kind: str,
        start: int,
    ) -> list[CodeFragment]:
        """Pack whole lines into fragments of at most ``max_fragment_size``.

        A single line longer than the limit is the only thing ever cut
        mid-line.
        """
        limit = self.max_fragment_size
        pieces: list[str] = []
        current = ""
        for line in content.split("\n"):
            while len(line) > limit:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(line[:limit])
                line = line[limit:]
            candidate = f"{current}\n{line}" if current else line
            if current and len(candidate) > limit:
                pieces.append(current)
                current = line
            else:
                current = candidate
        if current:
            pieces.append(current)

        fragments = []
        for offset, piece in enumerate(pieces):
            index = start + offset
            fragments.append(
                self._fragment(
                    project_id, file_path, f"{tagged_path}#part{offset}", piece, kind, index, complete=False
                )
            )
        return fragments

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fragment(
        self,
        project_id: str,
        file_path: str,
        tagged_path: str,
        content: str,
        kind: str,
        index: int,
        complete: bool,
    ) -> CodeFragment:
        fkind = file_kind(file_path)
        metadata = extract_metadata(file_path, content, fkind)
        metadata["is_complete"] = complete
        return CodeFragment(
            project_id=project_id,
            fragment_id=fragment_id(project_id, tagged_path, index),
            file_path=tagged_path,
            source_path=file_path,
            content=content,
            file_kind=fkind,
            fragment_kind=kind,
            index=index,
            metadata=metadata,
        )


def extract_metadata(file_path: str, content: str, kind: str) -> dict:
    file_name = PurePosixPath(file_path).name
    metadata: dict = {"file_name": file_name, "file_kind": kind}
    if kind == "vue":
        match = _COMPONENT_NAME_RE.search(content)
        metadata["component_name"] = match.group(1) if match else file_name.removesuffix(".vue")
        metadata["has_template"] = "<template" in content
        metadata["has_script"] = "<script" in content
        metadata["has_style"] = "<style" in content
        metadata["is_script_setup"] = "<script setup" in content
    return metadata


def _outer_block(content: str, open_tag: str, close_tag: str) -> str:
    """Text from the first *open_tag* through the last *close_tag* (inclusive)."""
    start = content.find(open_tag)
    end = content.rfind(close_tag)
    if start < 0 or end <= start:
        return ""
    return content[start : end + len(close_tag)]
