"""
Extraction providers with scripted behaviour
"""

from typing import Any, Dict, List

from processors.transaction_extractor import ExtractionProvider, ExtractionError


class ScriptedProvider(ExtractionProvider):
    """Returns a fixed dict, or raises the given exception"""

    def __init__(self, name: str, output: Dict[str, Any] = None, error: Exception = None):
        self.name = name
        self.output = output
        self.error = error
        self.prompts: List[str] = []

    def extract_raw(self, prompt: str) -> Dict[str, Any]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return dict(self.output or {})


def failing_provider(name: str = "primary-model", message: str = "timeout"):
    return ScriptedProvider(name, error=ExtractionError(message))
