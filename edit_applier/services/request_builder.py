"""
Edit Request Builder - Compose the payload sent to the apply service
"""

from __future__ import annotations

from typing import Any

from edit_applier.models.edit import EditRequest

from .errors import InvalidInput


def build(original_content: str, update_snippet: str, allow_create: bool = True) -> str:
    """Wrap the original file and the update snippet in <code>/<update> tags.

    No escaping is done: an original containing a literal ``</code>`` yields
    an ambiguous payload. An empty original means the file is being created
    and is only accepted when ``allow_create`` is set.
    """
    _check_inputs(original_content, update_snippet, allow_create)
    return f"<code>{original_content}</code>\n<update>{update_snippet}</update>"


def build_prompt(original_content: str, update_snippet: str, allow_create: bool = True) -> str:
    """Prompt-string variant used by the completions endpoint"""
    _check_inputs(original_content, update_snippet, allow_create)
    return f"ORIGINAL:\n{original_content}\n\nEDIT:\n{update_snippet}"


def _check_inputs(original_content: str, update_snippet: str, allow_create: bool) -> None:
    if not isinstance(original_content, str) or not isinstance(update_snippet, str):
        raise InvalidInput("original_content and update_snippet must be strings")
    if not update_snippet:
        raise InvalidInput("update_snippet is empty")
    if not original_content and not allow_create:
        raise InvalidInput("original_content is empty and file creation was not requested")


def build_chat_payload(model: str, payload_text: str, stream: bool = False) -> dict[str, Any]:
    """Chat-completions body carrying the tagged payload as one user message"""
    return {
        "model": model,
        "messages": [{"role": "user", "content": payload_text}],
        "stream": stream,
    }


def build_completion_payload(model: str, prompt: str, stream: bool = False) -> dict[str, Any]:
    """Completions body carrying the ORIGINAL/EDIT prompt"""
    return {
        "model": model,
        "prompt": prompt,
        "stream": stream,
    }


def build_request(request: EditRequest, prompt: bool = False) -> str:
    """Payload for an EditRequest; ``prompt`` selects the completions-endpoint form"""
    if prompt:
        return build_prompt(request.original_content, request.update_snippet)
    return build(request.original_content, request.update_snippet)
