"""Write parsed code to the project directory of its pipeline."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from codegen_assistant.domain.models import CodeGenType
from codegen_assistant.services.code_parsers import HtmlCodeResult, MultiFileCodeResult


class CodeFileSaver:
    def __init__(self, output_root: Path) -> None:
        self.output_root = output_root

    def project_dir(self, gen_type: CodeGenType, project_id: str) -> Path:
        return self.output_root / gen_type.project_dir_name(project_id)

    def save(
        self, result: HtmlCodeResult | MultiFileCodeResult, gen_type: CodeGenType, project_id: str
    ) -> Path:
        """Write the files of *result* and return the project directory.

        Raises:
            ValueError: If the result holds no html code.
        """
        if not result.html_code.strip():
            raise ValueError("no html code to save")

        files = {"index.html": result.html_code}
        if isinstance(result, MultiFileCodeResult):
            if result.css_code:
                files["style.css"] = result.css_code
            if result.js_code:
                files["script.js"] = result.js_code

        target = self.project_dir(gen_type, project_id)
        target.mkdir(parents=True, exist_ok=True)
        for name, content in files.items():
            (target / name).write_text(content, encoding="utf-8")

        logger.info("Saved generated code | dir={} | files={}", target, sorted(files))
        return target
