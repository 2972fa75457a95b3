"""Tests for the agent module."""

from pydantic_ai.models.openai import OpenAIChatModel

from codegen_assistant.agent import (
    HTML_SYSTEM_PROMPT,
    MULTI_FILE_SYSTEM_PROMPT,
    SYSTEM_PROMPTS,
    VUE_PROJECT_SYSTEM_PROMPT,
    create_chat_model,
)
from codegen_assistant.application.prompt_augmenter import REUSABLE_HINT
from codegen_assistant.domain.models import CodeGenType
from codegen_assistant.tools.file_tools import PROTECTED_FILES


class TestSystemPrompts:
    """Verify each pipeline's prompt states the output contract it is parsed against."""

    def test_every_type_has_a_prompt(self):
        assert set(SYSTEM_PROMPTS) == set(CodeGenType)

    def test_html_single_block(self):
        assert "ONE ```html code block" in HTML_SYSTEM_PROMPT

    def test_multi_file_blocks(self):
        assert "```html, ```css, ```javascript" in MULTI_FILE_SYSTEM_PROMPT
        assert "style.css" in MULTI_FILE_SYSTEM_PROMPT
        assert "script.js" in MULTI_FILE_SYSTEM_PROMPT

    def test_vue_mentions_reusable_fragments(self):
        assert f'"{REUSABLE_HINT}"' in VUE_PROJECT_SYSTEM_PROMPT
        assert "modifyFile" in VUE_PROJECT_SYSTEM_PROMPT

    def test_vue_protected_files_are_core_files(self):
        for name in ("package.json", "vite.config.js", "index.html", "main.js", "App.vue"):
            assert name in PROTECTED_FILES
            assert name in VUE_PROJECT_SYSTEM_PROMPT


class TestChatModel:
    def test_model_from_settings(self, settings):
        settings.chat_model = "gpt-4o"
        model = create_chat_model(settings)
        assert isinstance(model, OpenAIChatModel)
        assert model.model_name == "gpt-4o"
