"""
Prompts package for PortfoProphet.
Prompt templates live in .txt files and are filled with str.format.
"""

import os
from typing import Dict

# Cache for loaded prompts
_prompt_cache: Dict[str, str] = {}

# User-facing fallback texts
PORTFOLIO_EMPTY_TEXT = "目前沒有持倉"
ADVICE_FAILED_TEXT = "⚠️ 建議生成失敗: {error}"
ADVICE_EMPTY_TEXT = "無法生成投資組合建議。"
RATE_LIMIT_ADVISORY = "⚠️ AI 服務請求過於頻繁或配額已用盡 (429)。請稍候約一分鐘後再試。"


def load_prompt(filename: str) -> str:
    """
    Load a prompt from a text file.

    Args:
        filename: Name of the prompt file (e.g., 'stock_research.txt')

    Returns:
        Prompt content as string
    """
    if filename in _prompt_cache:
        return _prompt_cache[filename]

    prompt_dir = os.path.dirname(os.path.abspath(__file__))
    filepath = os.path.join(prompt_dir, filename)

    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
            _prompt_cache[filename] = content
            return content
    except FileNotFoundError:
        raise FileNotFoundError(f"Prompt file not found: {filepath}")
    except OSError as e:
        raise RuntimeError(f"Error loading prompt file {filename}: {e}")


def render_prompt(filename: str, **values) -> str:
    """Load a template and fill its placeholders."""
    return load_prompt(filename).format(**values)


DEFAULT_SYSTEM_PROMPT = load_prompt("system_prompt_zh.txt")
