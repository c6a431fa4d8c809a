"""
JSON utilities for cleaning LLM responses.
"""


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Handles fences anywhere in the response, e.g. prose followed by a ```json block.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    fence_start = response.find('```')
    fence_end = response.rfind('```')
    if fence_start == -1:
        return response
    if fence_end == fence_start:
        # Unterminated fence, e.g. the prompt prefilled the opening marker
        response = response[fence_start + 3:] if fence_start == 0 else response[:fence_start]
    else:
        response = response[fence_start + 3:fence_end]

    response = response.strip()
    if response.startswith('json'):
        response = response[4:]

    return response.strip()


def extract_json_array(response: str) -> str:
    """Return the first '[' to last ']' span of an LLM response, or '[]' if none.

    Args:
        response: Raw LLM response, possibly wrapped in prose or code fences

    Returns:
        JSON array text
    """
    if not response or not response.strip():
        return '[]'

    text = clean_json_response(response)
    start = text.find('[')
    end = text.rfind(']')
    if start >= 0 and end > start:
        return text[start:end + 1]
    return '[]'
