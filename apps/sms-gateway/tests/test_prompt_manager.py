"""
Tests for PromptManager - YAML loading, hot reload, SMS prompt assembly
"""

import os
import time

import pytest

from prompts.prompt_manager import PromptManager, prompt_manager


class TestSmsExtractionPrompt:

    def test_prompt_contains_rules_fields_and_message(self):
        prompt = prompt_manager.build_sms_extraction_prompt("MTN MoMo", "You have received 500 RWF")

        assert "Rules:" in prompt
        assert "- ft_id:" in prompt
        assert "- transaction_time_raw:" in prompt
        assert prompt.rstrip().endswith("SMS: You have received 500 RWF")
        assert "SENDER: MTN MoMo" in prompt

    def test_missing_sender_rendered_blank(self):
        prompt = prompt_manager.build_sms_extraction_prompt(None, "Bal 1 RWF")
        assert "SENDER: \n" in prompt


class TestHotReload:

    def test_reloads_when_file_changes(self, tmp_path):
        path = tmp_path / "sample.yaml"
        path.write_text("greeting: hello\n")
        manager = PromptManager(str(tmp_path))

        assert manager.get_prompt_config("sample") == {"greeting": "hello"}

        path.write_text("greeting: bonjour\n")
        later = time.time() + 10
        os.utime(path, (later, later))

        assert manager.get_prompt_config("sample") == {"greeting": "bonjour"}

    def test_missing_prompt_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PromptManager(str(tmp_path)).get_prompt_config("nope")
