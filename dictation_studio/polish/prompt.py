"""
Polish prompt construction and few-shot example editing.
"""

from typing import List, Optional

from ..config.settings import Example

EXAMPLES_HEADER = "Here are some examples of the desired output format:\n\n"
EXAMPLES_FOOTER = "Now please process the following transcript:\n\n"


def build_polish_prompt(
    transcript: str,
    system_prompt: str,
    examples: Optional[List[Example]] = None
) -> str:
    """
    Build the full polishing prompt sent to the text-generation model.

    The system prompt comes first, then any few-shot examples numbered from 1,
    then the transcript itself. Examples with neither input nor output are
    left out.

    Args:
        transcript: Raw transcription to polish
        system_prompt: Instructions for the model
        examples: Few-shot input/output pairs

    Returns:
        The prompt as a single string.
    """
    prompt = system_prompt + "\n\n"

    usable = [example for example in (examples or []) if not example.is_blank()]
    if usable:
        prompt += EXAMPLES_HEADER
        for index, example in enumerate(usable, start=1):
            prompt += f"Example {index}:\nInput: {example.input}\nOutput: {example.output}\n\n"
        prompt += EXAMPLES_FOOTER

    prompt += transcript
    return prompt


def add_example(examples: List[Example], input_text: str = "", output_text: str = "") -> List[Example]:
    """Return a new list with an example appended."""
    return [*examples, Example(input=input_text, output=output_text)]


def update_example(
    examples: List[Example],
    index: int,
    input_text: Optional[str] = None,
    output_text: Optional[str] = None
) -> List[Example]:
    """
    Return a new list with one example's fields replaced.

    Raises:
        IndexError: If index is out of range.
    """
    if not 0 <= index < len(examples):
        raise IndexError(f"No example at position {index + 1}")

    current = examples[index]
    updated = Example(
        input=current.input if input_text is None else input_text,
        output=current.output if output_text is None else output_text,
    )
    return [*examples[:index], updated, *examples[index + 1:]]


def remove_example(examples: List[Example], index: int) -> List[Example]:
    """
    Return a new list without the example at index.

    Raises:
        IndexError: If index is out of range.
    """
    if not 0 <= index < len(examples):
        raise IndexError(f"No example at position {index + 1}")
    return [example for i, example in enumerate(examples) if i != index]
