"""Prompt resolution for product photos."""

from typing import Optional

FALLBACK_PROMPT = (
    "Studio-grade e-commerce product photo on clean white seamless background, "
    "soft realistic shadow"
)

STYLE_DIRECTIVES = (
    "plain white seamless background, centered product, no watermark, no text, "
    "soft studio lighting, realistic soft shadow"
)

TITLE_TEMPLATE = "E-commerce studio photo of {title}, " + STYLE_DIRECTIVES + "."

REFERENCE_SUFFIX = " Use this image as a reference: {url}"


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def resolve(record=None, override_prompt: Optional[str] = None, reference_url: Optional[str] = None) -> str:
    """
    Build the generation prompt for a record.

    Precedence: explicit override, the record's stored override, a template
    over the record title, then the generic fallback. An explicit override is
    returned verbatim (trimmed); every other prompt gets the reference image
    sentence appended when a reference URL is given.

    Args:
        record: Product record (or None for direct calls)
        override_prompt: Caller-supplied prompt
        reference_url: Readable URL of a source image

    Returns:
        Non-empty prompt string
    """
    override = _clean(override_prompt)
    if override:
        return override

    stored = _clean(getattr(record, "prompt_override", None))
    title = _clean(getattr(record, "title", None))

    if stored:
        prompt = stored
    elif title:
        prompt = TITLE_TEMPLATE.format(title=title)
    else:
        prompt = FALLBACK_PROMPT

    if reference_url:
        prompt += REFERENCE_SUFFIX.format(url=reference_url)
    return prompt
