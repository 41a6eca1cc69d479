# gemini_service.py
import os
import logging
import re
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Configuration
MAX_COMMITS = 20
MAX_MESSAGE_LENGTH = 500
MAX_SUMMARY_LENGTH = 200

# Initialize Gemini model (optional: pushes are relayed without a summary)
model: Optional[genai.GenerativeModel] = None

api_key = os.environ.get("GEMINI_API_KEY")
if api_key:
    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel('gemini-pro')
        logger.info("Gemini model initialized successfully")
    except Exception as e:
        logger.error(f"Error configuring Gemini: {e}")
        model = None
else:
    logger.info("GEMINI_API_KEY not set - push summaries disabled")


def sanitize_input(text: str) -> str:
    """Strip control characters and collapse whitespace."""
    if not text:
        return ""

    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]', '', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def collect_commit_messages(commits: List[Dict[str, Any]]) -> List[str]:
    """Sanitize and truncate commit messages, newest last."""
    messages = []
    for commit in commits[-MAX_COMMITS:]:
        message = commit.get('message') if isinstance(commit, dict) else None
        if not isinstance(message, str):
            message = str(message) if message else ""
        message = sanitize_input(message)
        if not message:
            continue
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[:MAX_MESSAGE_LENGTH] + "..."
        messages.append(message)
    return messages


def summarize_push(commits: List[Dict[str, Any]]) -> Optional[str]:
    """Summarizes a multi-commit push using the Gemini API, or returns None."""
    if not model:
        return None

    messages = collect_commit_messages(commits)
    if len(messages) < 2:
        return None

    try:
        commit_list = "\n".join(f"- {m}" for m in messages)
        prompt = f"""
        Please provide a concise, one-sentence summary of the following Git commits pushed together.
        Focus on the overall change. Keep it under {MAX_SUMMARY_LENGTH} characters.

        Commits:
        ---
        {commit_list}
        ---

        Summary:
        """

        response = model.generate_content(prompt)

        if not response or not response.text:
            logger.warning("Empty response from Gemini API")
            return None

        summary = response.text.strip().replace('\n', ' ')

        if len(summary) > MAX_SUMMARY_LENGTH:
            summary = summary[:MAX_SUMMARY_LENGTH] + "..."

        logger.info("Successfully generated push summary")
        return summary

    except Exception as e:
        logger.error(f"Error calling Gemini API: {str(e)}")
        return None
