import yaml
import os
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class PromptManager:
    """
    Manages prompt templates with hot-reload support

    Loads prompts from YAML files next to this module so the wording can be
    tuned without a deploy.
    """

    def __init__(self, prompts_dir: Optional[str] = None):
        if prompts_dir is None:
            # Default to prompts/ directory in the same location as this file
            prompts_dir = Path(__file__).parent

        self.prompts_dir = Path(prompts_dir)
        self.cache: Dict[str, Dict[str, Any]] = {}
        logger.info(f"PromptManager initialized with directory: {self.prompts_dir}")

    def get_prompt_config(self, prompt_name: str) -> Dict[str, Any]:
        """
        Load prompt configuration from YAML file with hot-reload support

        Args:
            prompt_name: Name of the prompt file (without .yaml extension)

        Returns:
            Dictionary containing the prompt configuration
        """
        filepath = self.prompts_dir / f"{prompt_name}.yaml"

        if not filepath.exists():
            raise FileNotFoundError(f"Prompt file not found: {filepath}")

        # Get file modification time for hot-reload
        mtime = os.path.getmtime(filepath)

        cache_key = prompt_name

        # Check if we need to reload (file changed or not in cache)
        if cache_key not in self.cache or self.cache[cache_key].get('mtime') != mtime:
            logger.info(f"Loading/reloading prompt: {prompt_name}")
            with open(filepath, 'r') as f:
                config = yaml.safe_load(f)

            self.cache[cache_key] = {
                'data': config,
                'mtime': mtime
            }

        return self.cache[cache_key]['data']

    def build_sms_extraction_prompt(self, sender: Optional[str], body: str) -> str:
        """
        Build the extraction prompt for one SMS

        Args:
            sender: Originator as reported by the device (may be None)
            body: Full message text

        Returns:
            Complete prompt string ready for the model
        """
        config = self.get_prompt_config("sms_extraction")

        sections = [config['system_role'].strip()]

        if config.get('rules'):
            sections.append("Rules:")
            for rule in config['rules']:
                sections.append(f"- {rule}")

        if config.get('fields'):
            sections.append("\nReturn a single JSON object with these optional keys:")
            for name, description in config['fields'].items():
                sections.append(f"- {name}: {description}")

        sections.append("")
        sections.append(f"{config['sender_header']} {sender or ''}")
        sections.append(f"{config['message_header']} {body}")

        return "\n".join(sections)


# Singleton instance
prompt_manager = PromptManager()
