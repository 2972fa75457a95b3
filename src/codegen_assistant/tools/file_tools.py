"""File tools confined to one generated project directory."""

from __future__ import annotations

from pathlib import PurePosixPath

from loguru import logger
from pydantic import BaseModel, Field

from codegen_assistant.services.project_summary import render_tree
from codegen_assistant.tools import validator
from codegen_assistant.tools.base import BaseTool

# Files the model must never delete; the project cannot build without them.
PROTECTED_FILES = frozenset(
    {"package.json", "package-lock.json", "vite.config.js", "vite.config.ts", "index.html", "main.js", "main.ts", "App.vue"}
)


class ReadFileArgs(BaseModel):
    relativeFilePath: str = Field(description="Path of the file, relative to the project root")


class WriteFileArgs(BaseModel):
    relativeFilePath: str = Field(description="Path of the file, relative to the project root")
    content: str = Field(description="Full content to write to the file")


class ModifyFileArgs(BaseModel):
    relativeFilePath: str = Field(description="Path of the file, relative to the project root")
    oldContent: str = Field(description="Exact existing text to replace")
    newContent: str = Field(description="Replacement text")


class DeleteFileArgs(BaseModel):
    relativeFilePath: str = Field(description="Path of the file, relative to the project root")


class ReadDirArgs(BaseModel):
    relativeDirPath: str = Field(
        default="", description="Directory relative to the project root; empty for the root"
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ReadFileTool(BaseTool):
    name = "readFile"
    display_name = "Read file"
    description = "Read the content of a file in the project"
    args_model = ReadFileArgs

    def run(self, args: ReadFileArgs, context_id: str) -> str:
        path = self.resolve_path(args.relativeFilePath, context_id)
        if not path.is_file():
            return f"Error: file does not exist or is not a file - {args.relativeFilePath}"
        logger.info("Reading file | path={}", path)
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"Error: not a UTF-8 text file - {args.relativeFilePath}"

    def executed_summary(self, arguments: dict) -> str:
        return f"[{self.name}] {self.display_name} {arguments.get('relativeFilePath', '')}"


class WriteFileTool(BaseTool):
    name = "writeFile"
    display_name = "Write file"
    description = "Write a file in the project, creating parent directories as needed"
    args_model = WriteFileArgs

    def run(self, args: WriteFileArgs, context_id: str) -> str:
        path = self.resolve_path(args.relativeFilePath, context_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(args.content, encoding="utf-8")
        logger.info("Wrote file | path={} | chars={}", path, len(args.content))

        warning = validator.format_result(validator.validate(args.relativeFilePath, args.content))
        if warning:
            logger.warning("Quick validation failed | file={} | {}", args.relativeFilePath, warning)
            return f"File written successfully: {args.relativeFilePath}\n{warning}"
        return f"File written successfully: {args.relativeFilePath}"

    def executed_summary(self, arguments: dict) -> str:
        file_path = arguments.get("relativeFilePath", "")
        suffix = PurePosixPath(file_path).suffix.lstrip(".")
        return (
            f"[{self.name}] {self.display_name} {file_path}\n"
            f"```{suffix}\n{arguments.get('content', '')}\n```"
        )


class ModifyFileTool(BaseTool):
    name = "modifyFile"
    display_name = "Modify file"
    description = "Replace an exact piece of existing text in a project file"
    args_model = ModifyFileArgs

    def run(self, args: ModifyFileArgs, context_id: str) -> str:
        if args.oldContent == args.newContent:
            return "Error: oldContent and newContent are identical, nothing to modify"
        path = self.resolve_path(args.relativeFilePath, context_id)
        if not path.is_file():
            return f"Error: file does not exist or is not a file - {args.relativeFilePath}"

        try:
            original = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"Error: not a UTF-8 text file - {args.relativeFilePath}"
        if args.oldContent not in original:
            return f"Warning: the content to replace was not found in {args.relativeFilePath}, file unchanged"

        updated = original.replace(args.oldContent, args.newContent, 1)
        path.write_text(updated, encoding="utf-8")
        logger.info("Modified file | path={}", path)

        warning = validator.format_result(validator.validate(args.relativeFilePath, updated))
        if warning:
            return f"File modified successfully: {args.relativeFilePath}\n{warning}"
        return f"File modified successfully: {args.relativeFilePath}"

    def executed_summary(self, arguments: dict) -> str:
        return (
            f"[{self.name}] {self.display_name} {arguments.get('relativeFilePath', '')}\n\n"
            f"Before:\n```\n{arguments.get('oldContent', '')}\n```\n\n"
            f"After:\n```\n{arguments.get('newContent', '')}\n```"
        )


class DeleteFileTool(BaseTool):
    name = "deleteFile"
    display_name = "Delete file"
    description = "Delete a file from the project (core project files are protected)"
    args_model = DeleteFileArgs

    def run(self, args: DeleteFileArgs, context_id: str) -> str:
        path = self.resolve_path(args.relativeFilePath, context_id)
        if not path.exists():
            return f"Warning: file does not exist, nothing to delete - {args.relativeFilePath}"
        if not path.is_file():
            return f"Error: not a file, refusing to delete - {args.relativeFilePath}"
        if path.name in PROTECTED_FILES:
            return f"Error: {path.name} is a core project file and cannot be deleted"
        path.unlink()
        logger.info("Deleted file | path={}", path)
        return f"File deleted successfully: {args.relativeFilePath}"

    def executed_summary(self, arguments: dict) -> str:
        return f"[{self.name}] {self.display_name} {arguments.get('relativeFilePath', '')}"


class ReadDirTool(BaseTool):
    name = "readDir"
    display_name = "Read directory"
    description = "List the file tree of a project directory (build output and dependencies are skipped)"
    args_model = ReadDirArgs

    def run(self, args: ReadDirArgs, context_id: str) -> str:
        if args.relativeDirPath.strip() in ("", "."):
            directory = self.project_dir(context_id)
        else:
            directory = self.resolve_path(args.relativeDirPath, context_id)
        if not directory.is_dir():
            return f"Error: directory does not exist - {args.relativeDirPath or '.'}"
        label = args.relativeDirPath or "."
        return f"{label}/\n{render_tree(directory)}"

    def executed_summary(self, arguments: dict) -> str:
        return f"[{self.name}] {self.display_name} {arguments.get('relativeDirPath') or '.'}"
